"""
Middleware module for FastAPI application.
"""
from vault.middleware.metrics import MetricsMiddleware

__all__ = ["MetricsMiddleware"]
