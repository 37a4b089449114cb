"""
Metrics module for application monitoring.

This module provides Prometheus metrics collection and helper functions.
"""
from vault.metrics.prometheus import (
    # API Metrics
    api_requests_total,
    api_request_duration_seconds,
    api_requests_in_progress,

    # Trash Lifecycle Metrics
    trash_operations_total,
    trash_purges_total,
    trash_purge_duration_seconds,

    # Expiry Sweep Metrics
    trash_sweep_runs_total,
    trash_sweep_items_total,
    trash_sweep_duration_seconds,
    trash_sweep_last_run_timestamp,

    # Storage Metrics
    storage_used_bytes,
    storage_quota_bytes,
    storage_blob_removals_total,

    # System Metrics
    app_info,
    app_uptime_seconds,

    # Helper Functions
    record_api_request,
    record_trash_operation,
    record_purge,
    record_blob_removals,
    record_sweep,
    update_storage_metrics,
)

__all__ = [
    # API Metrics
    "api_requests_total",
    "api_request_duration_seconds",
    "api_requests_in_progress",

    # Trash Lifecycle Metrics
    "trash_operations_total",
    "trash_purges_total",
    "trash_purge_duration_seconds",

    # Expiry Sweep Metrics
    "trash_sweep_runs_total",
    "trash_sweep_items_total",
    "trash_sweep_duration_seconds",
    "trash_sweep_last_run_timestamp",

    # Storage Metrics
    "storage_used_bytes",
    "storage_quota_bytes",
    "storage_blob_removals_total",

    # System Metrics
    "app_info",
    "app_uptime_seconds",

    # Helper Functions
    "record_api_request",
    "record_trash_operation",
    "record_purge",
    "record_blob_removals",
    "record_sweep",
    "update_storage_metrics",
]
