"""
SQLAlchemy models for the message quota service.

Tables:
- subscription_tiers: admin-editable tier catalog (allowance, metering, feature flags)
- usage_ledger: one row per user with the current period's message counter

Tier names are the catalog's natural key; usage_ledger.tier_name deliberately
has no foreign key so that rows pointing at unknown tiers can be loaded and
healed by the consistency auditor instead of failing the write.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all models."""


class SubscriptionTierModel(Base):
    """Subscription tier definition."""

    __tablename__ = "subscription_tiers"
    __table_args__ = (
        CheckConstraint("monthly_allowance >= 0", name="chk_tier_allowance_non_negative"),
    )

    tier_name: Mapped[str] = mapped_column(String(32), primary_key=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(64))
    description: Mapped[Optional[str]] = mapped_column(Text)
    monthly_allowance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_metered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    features: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class UsageLedgerModel(Base):
    """Per-user message counter for the current billing period."""

    __tablename__ = "usage_ledger"
    __table_args__ = (
        Index("idx_usage_ledger_period_reset_at", "period_reset_at"),
        Index("idx_usage_ledger_tier_name", "tier_name"),
    )

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    tier_name: Mapped[Optional[str]] = mapped_column(String(32))
    messages_used: Mapped[Optional[int]] = mapped_column(Integer, default=0)
    period_reset_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


__all__ = [
    "Base",
    "SubscriptionTierModel",
    "UsageLedgerModel",
]
