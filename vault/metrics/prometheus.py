"""
Prometheus metrics for application monitoring.

This module defines all Prometheus metrics used throughout the application:
- API request metrics (requests, duration, in-progress)
- Trash lifecycle metrics (soft delete, restore, purge outcomes)
- Expiry sweep metrics (runs, items, duration, last success)
- Storage metrics (usage, quota, blob removals)
"""
from prometheus_client import Counter, Gauge, Histogram


# ============================================================================
# API Metrics
# ============================================================================

api_requests_total = Counter(
    "api_requests_total",
    "Total number of API requests",
    ["method", "endpoint", "status"],
)

api_request_duration_seconds = Histogram(
    "api_request_duration_seconds",
    "API request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

api_requests_in_progress = Gauge(
    "api_requests_in_progress",
    "Number of API requests currently being processed",
    ["method", "endpoint"],
)


# ============================================================================
# Trash Lifecycle Metrics
# ============================================================================

trash_operations_total = Counter(
    "trash_operations_total",
    "Lifecycle engine operations by outcome",
    ["operation", "outcome"],  # outcome: success or an error kind
)

trash_purges_total = Counter(
    "trash_purges_total",
    "Purge attempts by trigger and status",
    ["trigger", "status"],  # trigger: system, user, empty_trash
)

trash_purge_duration_seconds = Histogram(
    "trash_purge_duration_seconds",
    "Duration of single-entry purges including physical removal",
    ["trigger"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60],
)


# ============================================================================
# Expiry Sweep Metrics
# ============================================================================

trash_sweep_runs_total = Counter(
    "trash_sweep_runs_total",
    "Expiry sweeper runs",
    ["trigger", "status"],  # status: success, partial, skipped
)

trash_sweep_items_total = Counter(
    "trash_sweep_items_total",
    "Entries processed by the expiry sweeper",
    ["result"],  # result: purged, failed, skipped
)

trash_sweep_duration_seconds = Histogram(
    "trash_sweep_duration_seconds",
    "Duration of expiry sweeper runs",
    buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 300, 600, 1800, 3600],
)

trash_sweep_last_run_timestamp = Gauge(
    "trash_sweep_last_run_timestamp",
    "Unix time of the last completed sweeper run",
)


# ============================================================================
# Storage Metrics
# ============================================================================

storage_used_bytes = Gauge(
    "storage_used_bytes",
    "Storage space used by user",
    ["user_id"],
)

storage_quota_bytes = Gauge(
    "storage_quota_bytes",
    "Storage quota allocated to user",
    ["user_id"],
)

storage_blob_removals_total = Counter(
    "storage_blob_removals_total",
    "Physical blob removals performed by purges",
    ["status"],  # status: removed, already_gone
)


# ============================================================================
# System Metrics (Application Level)
# ============================================================================

app_info = Gauge(
    "app_info",
    "Application information",
    ["version", "environment"],
)

app_uptime_seconds = Gauge(
    "app_uptime_seconds",
    "Application uptime in seconds",
)


# ============================================================================
# Helper Functions
# ============================================================================

def record_api_request(method: str, endpoint: str, status_code: int, duration: float):
    """Record API request metrics."""
    api_requests_total.labels(method=method, endpoint=endpoint, status=status_code).inc()
    api_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(duration)


def record_trash_operation(operation: str, result) -> None:
    """Count an engine result under its error kind, or "success"."""
    outcome = "success" if result.ok else result.kind.value
    trash_operations_total.labels(operation=operation, outcome=outcome).inc()


def record_purge(trigger: str, duration: float, success: bool):
    """Record purge attempt metrics."""
    status = "success" if success else "failed"
    trash_purges_total.labels(trigger=trigger, status=status).inc()
    trash_purge_duration_seconds.labels(trigger=trigger).observe(duration)


def record_blob_removals(removed: int, already_gone: int):
    """Record physical removal outcomes of a purge."""
    if removed:
        storage_blob_removals_total.labels(status="removed").inc(removed)
    if already_gone:
        storage_blob_removals_total.labels(status="already_gone").inc(already_gone)


def record_sweep(report) -> None:
    """
    Record a finished sweeper run.

    Args:
        report: SweepReport of the run
    """
    if report.skipped_run:
        trash_sweep_runs_total.labels(trigger=report.trigger, status="skipped").inc()
        return

    status = "success" if report.succeeded else "partial"
    trash_sweep_runs_total.labels(trigger=report.trigger, status=status).inc()
    trash_sweep_items_total.labels(result="purged").inc(report.purged)
    trash_sweep_items_total.labels(result="failed").inc(report.failed)
    trash_sweep_items_total.labels(result="skipped").inc(report.skipped)
    trash_sweep_duration_seconds.observe(report.duration_seconds)
    trash_sweep_last_run_timestamp.set_to_current_time()


def update_storage_metrics(quota) -> None:
    """Update storage usage metrics from a QuotaSnapshot."""
    storage_used_bytes.labels(user_id=str(quota.user_id)).set(quota.storage_used)
    storage_quota_bytes.labels(user_id=str(quota.user_id)).set(quota.storage_limit)
