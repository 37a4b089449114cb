"""
Admin Endpoints
Operator tools: on-demand expiry sweep and quota reconciliation.
"""
import logging
from fastapi import APIRouter, Depends

from vault.api.v1.deps import get_lifecycle_engine, get_sweeper, raise_for_failure
from vault.core.security import require_admin
from vault.lifecycle import ExpirySweeper, LifecycleEngine
from vault.schemas import QuotaResponse, ReconcileResponse, SweepResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/trash/sweep", response_model=SweepResponse)
def run_trash_sweep(sweeper: ExpirySweeper = Depends(get_sweeper)):
    """Purge every expired trash entry now"""
    logger.info("Manual trash sweep requested")
    report = sweeper.run(trigger="manual")
    return SweepResponse(**report.to_dict())


@router.post("/users/{user_id}/reconcile-quota", response_model=ReconcileResponse)
def reconcile_quota(user_id: int, engine: LifecycleEngine = Depends(get_lifecycle_engine)):
    """Recompute a user's storage counter from their visible assets"""
    result = engine.reconcile_quota(user_id)
    raise_for_failure(result)

    return ReconcileResponse(
        previous_storage_used=result.previous,
        drift=result.drift,
        storage=QuotaResponse.from_snapshot(result.quota),
    )
