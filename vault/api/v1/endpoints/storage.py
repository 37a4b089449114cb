"""
Storage Endpoints
Quota usage of the authenticated user.
"""
from fastapi import APIRouter, Depends

from vault.api.v1.deps import get_lifecycle_engine, raise_for_failure
from vault.core.security import get_current_user
from vault.lifecycle import LifecycleEngine
from vault.models.user import User
from vault.schemas import QuotaResponse

router = APIRouter(tags=["storage"])


@router.get("/storage", response_model=QuotaResponse)
def get_storage(
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
):
    """Used and available bytes; over_quota is set after restores past the limit"""
    result = engine.quota_snapshot(current_user.id)
    raise_for_failure(result)
    return QuotaResponse.from_snapshot(result.quota)
