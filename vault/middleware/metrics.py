"""
FastAPI middleware for automatic Prometheus metrics collection.

This middleware tracks:
- Total API requests with method, endpoint, and status labels
- Request duration histograms
- In-progress request gauges
"""
import time
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from vault.metrics import (
    api_requests_in_progress,
    record_api_request,
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Middleware to automatically track API request metrics.

    The /metrics endpoint itself is not tracked.
    """

    # Collection name -> placeholder for the numeric id that follows it
    ID_PLACEHOLDERS = {
        "assets": "{asset_id}",
        "folders": "{folder_id}",
        "trash": "{entry_id}",
        "users": "{user_id}",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        path = request.url.path

        if path == "/metrics":
            return await call_next(request)

        # e.g., /api/v1/trash/42/restore -> /api/v1/trash/{entry_id}/restore
        normalized_path = self._normalize_path(path)

        api_requests_in_progress.labels(method=method, endpoint=normalized_path).inc()
        start_time = time.time()

        try:
            response = await call_next(request)
            record_api_request(method, normalized_path, response.status_code, time.time() - start_time)
            return response

        except Exception:
            record_api_request(method, normalized_path, 500, time.time() - start_time)
            raise

        finally:
            api_requests_in_progress.labels(method=method, endpoint=normalized_path).dec()

    def _normalize_path(self, path: str) -> str:
        """
        Replace numeric ids with placeholders to keep label cardinality low.

        Examples:
            /api/v1/assets/17 -> /api/v1/assets/{asset_id}
            /api/v1/admin/users/3/reconcile-quota -> /api/v1/admin/users/{user_id}/reconcile-quota
        """
        parts = path.split("/")
        normalized_parts = []

        for i, part in enumerate(parts):
            previous = parts[i - 1] if i > 0 else ""
            if part.isdigit() and previous in self.ID_PLACEHOLDERS:
                normalized_parts.append(self.ID_PLACEHOLDERS[previous])
            elif part.isdigit():
                normalized_parts.append("{id}")
            else:
                normalized_parts.append(part)

        return "/".join(normalized_parts)
