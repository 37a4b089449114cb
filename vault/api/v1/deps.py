"""
Shared dependencies of the v1 endpoints: the lifecycle engine, the sweeper
and the mapping of engine failures onto HTTP errors.
"""
from typing import Optional

from fastapi import HTTPException, status

from vault.db import SessionLocal
from vault.lifecycle import ErrorKind, ExpirySweeper, Failure, LifecycleEngine
from vault.schemas import BatchResponse, ErrorBody, ItemOutcome, QuotaResponse
from vault.storage import create_blob_store

_lifecycle_engine: Optional[LifecycleEngine] = None
_sweeper: Optional[ExpirySweeper] = None


def get_lifecycle_engine() -> LifecycleEngine:
    """
    Get or create the process-wide lifecycle engine.
    """
    global _lifecycle_engine

    if _lifecycle_engine is None:
        _lifecycle_engine = LifecycleEngine(SessionLocal, create_blob_store())

    return _lifecycle_engine


def get_sweeper() -> ExpirySweeper:
    """
    Get or create the process-wide expiry sweeper.

    Sharing one instance makes overlapping manual runs in this process
    refuse each other.
    """
    global _sweeper

    if _sweeper is None:
        _sweeper = ExpirySweeper(get_lifecycle_engine(), SessionLocal)

    return _sweeper


def shutdown_lifecycle() -> None:
    global _lifecycle_engine, _sweeper

    if _lifecycle_engine is not None:
        _lifecycle_engine.close()
    _lifecycle_engine = None
    _sweeper = None


HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.QUOTA_EXCEEDED: status.HTTP_507_INSUFFICIENT_STORAGE,
    ErrorKind.STORAGE_IO_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def raise_for_failure(result) -> None:
    """
    Raise the HTTPException matching an engine error variant.

    Success variants pass through untouched.
    """
    if result.ok:
        return

    raise HTTPException(
        status_code=HTTP_STATUS_BY_KIND[result.kind],
        detail=result.to_dict(),
    )


def batch_response(result) -> BatchResponse:
    """Itemized response for empty-trash / restore-multiple."""
    results = {}
    for entry_id, outcome in result.outcomes.items():
        if isinstance(outcome, Failure):
            results[entry_id] = ItemOutcome(ok=False, error=ErrorBody(**outcome.to_dict()))
        else:
            results[entry_id] = ItemOutcome(ok=True)

    return BatchResponse(
        succeeded=result.succeeded,
        failed=result.failed,
        skipped=result.skipped,
        results=results,
        storage=QuotaResponse.from_snapshot(result.quota) if result.quota else None,
    )
