"""
Asset and Folder Endpoints
Register uploads, list visible assets and move assets or folders to trash.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from vault.api.v1.deps import get_lifecycle_engine, raise_for_failure
from vault.core.security import get_current_user
from vault.db import get_db
from vault.lifecycle import LifecycleEngine
from vault.models.asset import Asset
from vault.models.trash import TrashItemType
from vault.models.user import User
from vault.schemas import (
    AssetCreate,
    AssetListResponse,
    AssetResponse,
    QuotaResponse,
    SoftDeleteResponse,
    TrashEntryResponse,
    UploadResponse,
)
from vault.storage import AssetRepository

router = APIRouter(tags=["assets"])


def _soft_delete_response(result) -> SoftDeleteResponse:
    raise_for_failure(result)
    return SoftDeleteResponse(
        entry=TrashEntryResponse.model_validate(result.entry),
        storage=QuotaResponse.from_snapshot(result.quota),
    )


@router.post("/assets", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
def register_asset(
    data: AssetCreate,
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Record a stored file against the user's quota"""
    result = engine.register_upload(
        owner_id=current_user.id,
        asset_type=data.asset_type,
        original_name=data.original_name,
        size_bytes=data.size_bytes,
        storage_path=data.storage_path,
        mime_type=data.mime_type,
        parent_folder_id=data.parent_folder_id,
    )
    raise_for_failure(result)
    return UploadResponse(asset_id=result.asset_id, storage=QuotaResponse.from_snapshot(result.quota))


@router.get("/assets", response_model=AssetListResponse)
def list_assets(
    folder_id: Optional[int] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List assets the user can see; anything inside a trashed folder is hidden"""
    repo = AssetRepository(db)

    if folder_id is not None:
        folder = repo.get_folder(folder_id)
        # Other users' folders look exactly like missing ones
        if folder is None or folder.owner_id != current_user.id or not repo.is_folder_visible(folder_id):
            raise HTTPException(
                status.HTTP_404_NOT_FOUND, {"kind": "not_found", "message": f"folder not found: {folder_id}"}
            )

    assets = repo.list_visible_assets(current_user.id, folder_id=folder_id)
    return AssetListResponse(
        items=[AssetResponse.model_validate(asset) for asset in assets],
        total=len(assets),
    )


@router.delete("/assets/{asset_id}", response_model=SoftDeleteResponse)
def delete_asset(
    asset_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Move an asset to trash"""
    asset = db.get(Asset, asset_id)
    if asset is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, {"kind": "not_found", "message": f"asset not found: {asset_id}"})

    item_type = TrashItemType.for_asset(asset.asset_type)
    return _soft_delete_response(engine.soft_delete(current_user.id, item_type, asset_id))


@router.delete("/folders/{folder_id}", response_model=SoftDeleteResponse)
def delete_folder(
    folder_id: int,
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Move a folder and everything below it to trash"""
    return _soft_delete_response(engine.soft_delete(current_user.id, TrashItemType.FOLDER, folder_id))
