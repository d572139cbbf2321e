"""Operational endpoints: tier assignment, period reset sweep and ledger audit."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from src.constants import FAULT_STORAGE_UNAVAILABLE
from src.core.quota import AuditReport, StorageUnavailable, SweepReport, UnknownTier
from src.utils.timer_utils import Timer

from ..dependencies import get_service, require_admin_key
from ..schemas.errors import ADMIN_ERROR_RESPONSES
from ..schemas.quota import ChangeTierRequest, EnrollRequest, QuotaStatusResponse

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_admin_key)])


@router.post(
    "/reset-sweep",
    response_model=SweepReport,
    responses=ADMIN_ERROR_RESPONSES,
    operation_id="runResetSweep",
    summary="Reset every counter whose period has ended",
)
async def run_reset_sweep(service=Depends(get_service)):
    """
    Run one period reset sweep now.

    Safe to call while the background task is running; rows already reset
    are counted as skipped.
    """
    with Timer() as t:
        report = await service.run_reset_sweep()
    logger.info(f"Manual reset sweep finished in {t.elapsed_ms:.0f}ms")
    return report


@router.post(
    "/audit",
    response_model=AuditReport,
    responses=ADMIN_ERROR_RESPONSES,
    operation_id="runUsageAudit",
    summary="Find and repair inconsistent ledger rows",
)
async def run_audit(
    dry_run: bool = Query(False, description="Report violations without repairing them"),
    service=Depends(get_service),
):
    """
    Audit the usage ledger.

    Repairs rows with an unknown tier, a missing reset instant or a negative
    counter. Use `dry_run=true` to preview.
    """
    try:
        with Timer() as t:
            report = await service.run_audit(dry_run=dry_run)
    except UnknownTier as e:
        raise HTTPException(
            status_code=409,
            detail=f"Default tier {e.tier_name!r} is not seeded; run scripts/seed_tiers.py first",
        )
    logger.info(f"Manual audit finished in {t.elapsed_ms:.0f}ms (dry_run={dry_run})")
    return report


async def _status(service, user_id: str) -> QuotaStatusResponse:
    decision = await service.peek(user_id)
    if decision.fault == FAULT_STORAGE_UNAVAILABLE:
        raise StorageUnavailable("peek")
    return QuotaStatusResponse.from_decision(decision)


@router.post(
    "/users/{user_id}/enroll",
    response_model=QuotaStatusResponse,
    responses=ADMIN_ERROR_RESPONSES,
    operation_id="enrollUser",
    summary="Open a user's usage ledger row",
)
async def enroll_user(
    body: EnrollRequest,
    user_id: str = Path(..., min_length=1, max_length=255),
    service=Depends(get_service),
):
    """
    Record the user's tier at account creation.

    Idempotent: an existing row is left unchanged.
    """
    tier_name = body.tier.value if body.tier else None
    try:
        await service.enroll(user_id, tier_name)
    except UnknownTier as e:
        raise HTTPException(status_code=404, detail=f"Tier not available: {e.tier_name}")

    return await _status(service, user_id)


@router.put(
    "/users/{user_id}/tier",
    response_model=QuotaStatusResponse,
    responses=ADMIN_ERROR_RESPONSES,
    operation_id="changeUserTier",
    summary="Move a user to another tier",
)
async def change_user_tier(
    body: ChangeTierRequest,
    user_id: str = Path(..., min_length=1, max_length=255),
    service=Depends(get_service),
):
    """
    Change a user's tier.

    The current period's counter is kept. Billing for the change is handled
    upstream; this endpoint only records the new entitlement.
    """
    try:
        await service.change_tier(user_id, body.tier.value)
    except UnknownTier:
        raise HTTPException(status_code=404, detail=f"Tier not available: {body.tier.value}")

    logger.info(f"Admin moved user {user_id} to tier {body.tier.value}")
    return await _status(service, user_id)
