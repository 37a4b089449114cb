"""
Trash and Storage Schemas

Pydantic models for the trash, asset and storage endpoints.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from vault.models.asset import AssetType
from vault.models.trash import TrashItemType


# ============================================================================
# Storage
# ============================================================================

class QuotaResponse(BaseModel):
    """Current storage counters of a user"""
    user_id: int
    storage_used: int
    storage_limit: int
    available_bytes: int
    usage_percentage: float
    over_quota: bool
    is_warning: bool

    @classmethod
    def from_snapshot(cls, snapshot) -> "QuotaResponse":
        return cls(**snapshot.to_dict())


class ReconcileResponse(BaseModel):
    """Result of a storage counter recalculation"""
    previous_storage_used: int
    drift: int
    storage: QuotaResponse


# ============================================================================
# Assets
# ============================================================================

class AssetCreate(BaseModel):
    """Request body for registering an uploaded file"""
    asset_type: AssetType
    original_name: str = Field(..., min_length=1, max_length=255)
    size_bytes: int = Field(..., ge=0)
    storage_path: str = Field(..., min_length=1, max_length=1024)
    mime_type: Optional[str] = Field(None, max_length=100)
    parent_folder_id: Optional[int] = None


class AssetResponse(BaseModel):
    """Visible asset"""
    id: int
    asset_type: AssetType
    original_name: str
    mime_type: Optional[str]
    size_bytes: int
    parent_folder_id: Optional[int]
    created_at: datetime

    class Config:
        from_attributes = True


class AssetListResponse(BaseModel):
    items: List[AssetResponse]
    total: int


class UploadResponse(BaseModel):
    asset_id: int
    storage: QuotaResponse


# ============================================================================
# Trash
# ============================================================================

class TrashEntryResponse(BaseModel):
    """Trash entry as shown on the trash page"""
    id: int
    item_type: TrashItemType
    item_id: int
    original_name: str
    original_path: str
    size_bytes: int
    mime_type: Optional[str]
    deleted_at: datetime
    permanent_delete_at: datetime
    restored_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TrashListResponse(BaseModel):
    items: List[TrashEntryResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class TrashStatsResponse(BaseModel):
    total_items: int
    total_size: int
    total_size_mb: float
    by_type: Dict[str, int]
    expiring_soon: int


class SoftDeleteResponse(BaseModel):
    """Item moved to trash"""
    entry: TrashEntryResponse
    storage: QuotaResponse


class RestoreResponse(BaseModel):
    """Item restored from trash"""
    entry: TrashEntryResponse
    storage: QuotaResponse
    reparented: bool = Field(False, description="Item was moved to the root because its folder is gone")
    over_quota: bool = False


class PurgeResponse(BaseModel):
    """Trash entry permanently deleted"""
    entry_id: int
    item_type: TrashItemType
    item_id: int
    records_deleted: int
    blobs_removed: int
    blobs_already_gone: int
    cascaded_entry_ids: List[int] = []


class RestoreManyRequest(BaseModel):
    """Request body for restoring several trash entries"""
    ids: List[int] = Field(..., min_length=1, max_length=500)


class ErrorBody(BaseModel):
    kind: str
    message: str


class ItemOutcome(BaseModel):
    ok: bool
    error: Optional[ErrorBody] = None


class BatchResponse(BaseModel):
    """Per-entry outcome of empty-trash / restore-multiple"""
    succeeded: int
    failed: int
    skipped: int
    results: Dict[int, ItemOutcome]
    storage: Optional[QuotaResponse] = None


# ============================================================================
# Admin
# ============================================================================

class SweepResponse(BaseModel):
    """Report of an expiry sweeper run"""
    trigger: str
    started_at: datetime
    scanned: int
    purged: int
    failed: int
    skipped: int
    batches: int
    duration_seconds: float
    errors: List[str]
    skipped_run: bool
