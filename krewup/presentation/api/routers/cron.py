"""Scheduled maintenance endpoints, called by the platform scheduler."""

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool

from ....core.clock import Clock
from ....core.dependencies import get_clock, get_entitlement_service
from ....domain.errors import PersistenceError
from ....services.entitlement_service import EntitlementService
from ..dependencies import require_cron_secret
from ..schemas.webhook_schemas import BoostResetResponse

router = APIRouter(prefix="/api/cron", tags=["Cron"])


@router.get("/reset-expired-boosts", response_model=BoostResetResponse)
async def reset_expired_boosts(
    _: None = Depends(require_cron_secret),
    entitlement_service: EntitlementService = Depends(get_entitlement_service),
    clock: Clock = Depends(get_clock),
) -> BoostResetResponse:
    """Clear worker profile boosts whose expiry has passed."""
    try:
        worker_ids = await run_in_threadpool(entitlement_service.reset_expired_boosts, clock())
    except PersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to reset expired boosts",
        ) from exc

    if not worker_ids:
        message = "No expired boosts to reset"
    else:
        message = f"Reset {len(worker_ids)} expired boosts"
    return BoostResetResponse(
        success=True,
        message=message,
        count=len(worker_ids),
        worker_ids=worker_ids,
    )
