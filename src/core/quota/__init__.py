"""
Message quota module.

Provides tier definitions, per-user monthly message counters, the admission
check, the period reset sweep and the ledger consistency audit.

The SQLAlchemy store lives in ``src.core.quota.sql_store`` and is imported
on demand so that the in-memory configuration never touches the database
layer.
"""

from .schemas import (
    TierName,
    Tier,
    UsageRow,
    AdmissionDecision,
    SweepReport,
    AuditReport,
)
from .exceptions import (
    QuotaError,
    UnknownTier,
    StorageUnavailable,
    InvalidAllowance,
    QuotaExceededException,
)
from .config import QuotaConfig
from .periods import add_months, first_reset_at, next_reset_at, is_due
from .store import UsageStore, InMemoryUsageStore
from .tier_catalog import TierCatalog, DEFAULT_TIERS
from .quota_guard import QuotaGuard
from .reset_scheduler import PeriodResetScheduler
from .auditor import ConsistencyAuditor
from .service import QuotaService, get_quota_service

__all__ = [
    # Schemas
    "TierName",
    "Tier",
    "UsageRow",
    "AdmissionDecision",
    "SweepReport",
    "AuditReport",
    # Exceptions
    "QuotaError",
    "UnknownTier",
    "StorageUnavailable",
    "InvalidAllowance",
    "QuotaExceededException",
    # Config
    "QuotaConfig",
    # Periods
    "add_months",
    "first_reset_at",
    "next_reset_at",
    "is_due",
    # Store
    "UsageStore",
    "InMemoryUsageStore",
    # Components
    "TierCatalog",
    "DEFAULT_TIERS",
    "QuotaGuard",
    "PeriodResetScheduler",
    "ConsistencyAuditor",
    # Service
    "QuotaService",
    "get_quota_service",
]
