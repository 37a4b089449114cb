"""
Pydantic schemas for request/response validation.
"""
from vault.schemas.trash import (
    AssetCreate,
    AssetListResponse,
    AssetResponse,
    BatchResponse,
    ErrorBody,
    ItemOutcome,
    PurgeResponse,
    QuotaResponse,
    ReconcileResponse,
    RestoreManyRequest,
    RestoreResponse,
    SoftDeleteResponse,
    SweepResponse,
    TrashEntryResponse,
    TrashListResponse,
    TrashStatsResponse,
    UploadResponse,
)

__all__ = [
    "AssetCreate",
    "AssetListResponse",
    "AssetResponse",
    "BatchResponse",
    "ErrorBody",
    "ItemOutcome",
    "PurgeResponse",
    "QuotaResponse",
    "ReconcileResponse",
    "RestoreManyRequest",
    "RestoreResponse",
    "SoftDeleteResponse",
    "SweepResponse",
    "TrashEntryResponse",
    "TrashListResponse",
    "TrashStatsResponse",
    "UploadResponse",
]
