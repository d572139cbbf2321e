"""Schemas for the message quota endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from src.core.quota import AdmissionDecision, TierName


class QuotaStatusResponse(BaseModel):
    """Admission decision as returned to the client."""
    success: bool = True
    user_id: Optional[str] = None
    tier: Optional[str] = Field(default=None, examples=["freemium"])
    allowed: bool = Field(..., description="Whether a message is (or would be) admitted")
    unlimited: bool = Field(default=False, description="True for unmetered tiers")
    messages_used: int = Field(default=0, examples=[3])
    limit: Optional[int] = Field(default=None, description="Monthly allowance, null when unlimited", examples=[10])
    remaining: Optional[int] = Field(default=None, description="Messages left, null when unlimited", examples=[7])
    reset_at: Optional[datetime] = Field(default=None, description="When the counter next resets (UTC)")
    fault: Optional[str] = Field(default=None, description="unknown_tier or storage_unavailable")

    @classmethod
    def from_decision(cls, decision: AdmissionDecision) -> "QuotaStatusResponse":
        return cls(
            success=decision.fault is None,
            user_id=decision.user_id,
            tier=decision.tier,
            allowed=decision.allowed,
            unlimited=decision.unlimited,
            messages_used=decision.messages_used,
            limit=decision.limit,
            remaining=decision.remaining,
            reset_at=decision.reset_at,
            fault=decision.fault,
        )


class ChangeTierRequest(BaseModel):
    """Request to move a user to another tier."""
    tier: TierName = Field(..., description="Target tier", examples=["pro"])


class EnrollRequest(BaseModel):
    """Request to open a user's ledger row at account creation."""
    tier: Optional[TierName] = Field(default=None, description="Initial tier, default tier when omitted", examples=["freemium"])


__all__ = [
    "QuotaStatusResponse",
    "ChangeTierRequest",
    "EnrollRequest",
]
