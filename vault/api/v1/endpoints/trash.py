"""
Trash Endpoints
List, inspect, restore and permanently delete trashed items.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query

from vault.api.v1.deps import batch_response, get_lifecycle_engine, raise_for_failure
from vault.core.security import get_current_user
from vault.lifecycle import LifecycleEngine
from vault.models.trash import TrashItemType
from vault.models.user import User
from vault.schemas import (
    BatchResponse,
    PurgeResponse,
    QuotaResponse,
    RestoreManyRequest,
    RestoreResponse,
    TrashEntryResponse,
    TrashListResponse,
    TrashStatsResponse,
)

router = APIRouter(prefix="/trash", tags=["trash"])


@router.get("", response_model=TrashListResponse)
def list_trash(
    item_type: Optional[TrashItemType] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """List trashed items, newest first"""
    result = engine.list_trash(current_user.id, item_type=item_type, page=page, limit=limit)
    return TrashListResponse(
        items=[TrashEntryResponse.model_validate(view) for view in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get("/stats", response_model=TrashStatsResponse)
def trash_stats(
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Counts and sizes of trashed items, including those expiring soon"""
    return TrashStatsResponse(**engine.trash_stats(current_user.id).to_dict())


@router.post("/restore-multiple", response_model=BatchResponse)
def restore_multiple(
    data: RestoreManyRequest,
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Restore several entries; each one succeeds or fails on its own"""
    result = engine.restore_many(current_user.id, data.ids)
    raise_for_failure(result)
    return batch_response(result)


@router.post("/{entry_id}/restore", response_model=RestoreResponse)
def restore_entry(
    entry_id: int,
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Restore a trashed item; folders that no longer exist send it to the root"""
    result = engine.restore(current_user.id, entry_id)
    raise_for_failure(result)

    return RestoreResponse(
        entry=TrashEntryResponse.model_validate(result.entry),
        storage=QuotaResponse.from_snapshot(result.quota),
        reparented=result.reparented,
        over_quota=result.over_quota,
    )


@router.delete("/empty", response_model=BatchResponse)
def empty_trash(
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Permanently delete everything in the user's trash"""
    result = engine.empty_trash(current_user.id)
    raise_for_failure(result)
    return batch_response(result)


@router.delete("/{entry_id}", response_model=PurgeResponse)
def delete_permanently(
    entry_id: int,
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Permanently delete one trashed item"""
    result = engine.delete_permanently(current_user.id, entry_id)
    raise_for_failure(result)

    return PurgeResponse(
        entry_id=result.entry_id,
        item_type=result.item_type,
        item_id=result.item_id,
        records_deleted=result.records_deleted,
        blobs_removed=result.blobs_removed,
        blobs_already_gone=result.blobs_already_gone,
        cascaded_entry_ids=list(result.cascaded_entry_ids),
    )
