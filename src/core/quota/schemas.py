"""
Pydantic schemas for tiers, usage ledger rows and admission decisions.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, Field


class TierName(str, Enum):
    """Closed set of subscription tiers."""
    freemium = "freemium"
    pro = "pro"
    team = "team"
    enterprise = "enterprise"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


class Tier(BaseModel):
    """Subscription tier definition."""
    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    monthly_allowance: int = 0
    is_metered: bool = True
    features: Dict[str, Any] = Field(default_factory=dict)
    sort_order: int = 0
    is_active: bool = True

    @property
    def is_unlimited(self) -> bool:
        return not self.is_metered


class UsageRow(BaseModel):
    """
    Per-user usage ledger entry.

    Fields are optional so that corrupt rows can still be loaded and
    handed to the consistency auditor.
    """
    user_id: str
    tier_name: Optional[str] = None
    messages_used: Optional[int] = 0
    period_reset_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AdmissionDecision(BaseModel):
    """Result of a single quota evaluation. Never persisted."""
    allowed: bool
    remaining: Optional[int] = None  # None means unlimited
    reset_at: Optional[datetime] = None
    user_id: Optional[str] = None
    tier: Optional[str] = None
    messages_used: int = 0
    limit: Optional[int] = None  # None means unlimited
    fault: Optional[str] = None  # unknown_tier, storage_unavailable

    @property
    def unlimited(self) -> bool:
        return self.allowed and self.remaining is None


class SweepReport(BaseModel):
    """Outcome of one period reset sweep."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    checked: int = 0
    reset: int = 0
    skipped: int = 0
    failed: int = 0


class AuditReport(BaseModel):
    """Outcome of one consistency audit pass."""
    checked: int = 0
    found: Dict[str, int] = Field(default_factory=dict)
    corrected: Dict[str, int] = Field(default_factory=dict)
    skipped: int = 0
    repaired_user_ids: List[str] = Field(default_factory=list)
    tier_distribution: Dict[str, int] = Field(default_factory=dict)
    dry_run: bool = False

    @property
    def total_corrected(self) -> int:
        return sum(self.corrected.values())


__all__ = [
    "TierName",
    "Tier",
    "UsageRow",
    "AdmissionDecision",
    "SweepReport",
    "AuditReport",
]
