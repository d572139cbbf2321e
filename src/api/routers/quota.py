"""Message quota API endpoints.

All endpoints are scoped to the caller identified by the X-User-ID header.
The caller's tier is assigned through the admin endpoints and is never taken
from the request.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from src.constants import FAULT_STORAGE_UNAVAILABLE
from src.core.quota import StorageUnavailable, UnknownTier

from ..dependencies import get_api_key, get_service, get_user_id
from ..schemas.errors import QUOTA_ERROR_RESPONSES
from ..schemas.quota import QuotaStatusResponse

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(get_api_key)])


@router.post(
    "/consume",
    response_model=QuotaStatusResponse,
    responses=QUOTA_ERROR_RESPONSES,
    operation_id="consumeMessage",
    summary="Admit and record one message",
)
async def consume_message(
    request: Request,
    user_id: str = Depends(get_user_id),
    service=Depends(get_service),
):
    """
    Check the caller's monthly allowance and record one message.

    A caller without a ledger row starts on the default tier.

    Responses:
    - **200**: message admitted; `remaining` is null for unlimited tiers
    - **402**: monthly limit reached (with upgrade suggestion), or the
      caller's tier is not recognised
    - **503**: usage ledger unavailable
    """
    try:
        decision = await service.check_and_consume_or_raise(user_id)
    except UnknownTier as e:
        request_id = getattr(request.state, "request_id", "unknown")
        return JSONResponse(
            status_code=402,
            content={
                "success": False,
                "error": "unknown_tier",
                "tier": e.tier_name,
                "message": "Your subscription tier could not be resolved. Please contact support.",
                "request_id": request_id,
            },
        )

    return QuotaStatusResponse.from_decision(decision)


@router.get(
    "/status",
    response_model=QuotaStatusResponse,
    responses=QUOTA_ERROR_RESPONSES,
    operation_id="getQuotaStatus",
    summary="Get the caller's quota without consuming",
)
async def get_quota_status(
    user_id: str = Depends(get_user_id),
    service=Depends(get_service),
):
    """
    Report the caller's usage for the current period.

    Nothing is written; a period that has ended is shown as already reset.
    """
    decision = await service.peek(user_id)
    if decision.fault == FAULT_STORAGE_UNAVAILABLE:
        raise StorageUnavailable("peek")
    return QuotaStatusResponse.from_decision(decision)
