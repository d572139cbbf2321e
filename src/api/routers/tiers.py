"""Subscription Tiers API endpoints.

Listing is public (used by the pricing and registration pages); updates
require the admin key when ADMIN_API_KEY is configured.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from src.core.quota import Tier, TierName, UnknownTier

from ..dependencies import get_service, require_admin_key
from ..schemas.errors import TIER_ERROR_RESPONSES

logger = logging.getLogger(__name__)
router = APIRouter()


# =============================================================================
# Request / Response Schemas
# =============================================================================


class TierResponse(BaseModel):
    """Subscription tier information."""
    id: str = Field(..., description="Tier identifier (freemium, pro, team, enterprise)")
    name: str = Field(..., description="Display name")
    description: Optional[str] = Field(None, description="Tier description")
    monthly_allowance: int = Field(..., description="Messages per period for metered tiers")
    is_metered: bool = Field(..., description="False for unlimited tiers")
    messages_display: str = Field(..., description="Human-readable allowance (e.g., '10 messages/month')")
    features: Dict[str, Any] = Field(default_factory=dict)
    sort_order: int = 0
    is_active: bool = True
    highlighted: bool = Field(False, description="Whether this tier is highlighted (popular)")
    key_features: List[str] = Field(default_factory=list, description="Key features for display")


class TiersListResponse(BaseModel):
    """Response for listing all available tiers."""
    success: bool
    tiers: List[TierResponse] = Field(default_factory=list)
    error: Optional[str] = None


class TierUpdateRequest(BaseModel):
    """Tier definition as sent by an administrator."""
    display_name: Optional[str] = None
    description: Optional[str] = None
    monthly_allowance: int = Field(
        ...,
        description="Messages per period; -1 marks the tier unlimited",
        examples=[10],
    )
    is_metered: bool = True
    features: Dict[str, Any] = Field(default_factory=dict)
    sort_order: int = 0
    is_active: bool = True


class TierUpdateResponse(BaseModel):
    success: bool
    tier: TierResponse


# =============================================================================
# Helper Functions
# =============================================================================


def _format_allowance(tier: Tier) -> str:
    """Format the allowance for display (e.g., 'Unlimited', '10 messages/month')."""
    if tier.is_unlimited:
        return "Unlimited messages"
    return f"{tier.monthly_allowance:,} messages/month"


def _generate_key_features(tier: Tier) -> List[str]:
    """Generate key features list for display."""
    features = tier.features or {}
    key_features = [_format_allowance(tier)]

    max_projects = features.get("max_projects")
    if max_projects is None and "max_projects" in features:
        key_features.append("Unlimited projects")
    elif max_projects:
        key_features.append(f"{max_projects} project{'s' if max_projects != 1 else ''}")

    if features.get("team_features"):
        key_features.append("Team workspaces")
    if features.get("sso"):
        key_features.append("Single sign-on")

    support = features.get("support_level")
    if support:
        key_features.append(f"{support.title()} support")

    return key_features


def _to_response(tier: Tier) -> TierResponse:
    return TierResponse(
        id=tier.name,
        name=tier.display_name or tier.name.title(),
        description=tier.description,
        monthly_allowance=tier.monthly_allowance,
        is_metered=tier.is_metered,
        messages_display=_format_allowance(tier),
        features=tier.features,
        sort_order=tier.sort_order,
        is_active=tier.is_active,
        highlighted=(tier.name == TierName.pro.value),  # Pro tier is highlighted
        key_features=_generate_key_features(tier),
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get(
    "",
    response_model=TiersListResponse,
    operation_id="listTiers",
    summary="List available subscription tiers",
)
async def list_tiers(service=Depends(get_service)):
    """
    Get all active subscription tiers with their message allowances.

    This is a **public endpoint** - no authentication required.
    """
    tiers = await service.list_tiers()
    return TiersListResponse(success=True, tiers=[_to_response(t) for t in tiers])


@router.get(
    "/{tier_name}",
    response_model=TierResponse,
    responses=TIER_ERROR_RESPONSES,
    operation_id="getTier",
    summary="Get a subscription tier",
)
async def get_tier(tier_name: str, service=Depends(get_service)):
    try:
        tier = await service.get_tier(tier_name)
    except UnknownTier:
        raise HTTPException(status_code=404, detail=f"Tier not found: {tier_name}")
    return _to_response(tier)


@router.put(
    "/{tier_name}",
    response_model=TierUpdateResponse,
    responses=TIER_ERROR_RESPONSES,
    dependencies=[Depends(require_admin_key)],
    operation_id="upsertTier",
    summary="Create or update a subscription tier",
)
async def upsert_tier(
    tier_name: str,
    request: TierUpdateRequest,
    service=Depends(get_service),
):
    """
    Create or update a tier definition.

    Counters already recorded against the tier are not rewritten; the new
    allowance applies from the next admission check.
    """
    if tier_name not in TierName.values():
        raise HTTPException(
            status_code=404,
            detail=f"Unknown tier {tier_name!r}; expected one of {', '.join(TierName.values())}",
        )

    tier = await service.upsert_tier(Tier(name=tier_name, **request.model_dump()))
    logger.info(f"Tier {tier_name} updated via API")
    return TierUpdateResponse(success=True, tier=_to_response(tier))
