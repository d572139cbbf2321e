"""
PostgreSQL database package for the message quota service.

Provides:
- SQLAlchemy 2.0 async ORM models for the tier catalog and usage ledger
- Per-event-loop connection management
- Retry helpers for transient database errors
"""

from .connection import DatabaseManager, db
from .models import (
    Base,
    SubscriptionTierModel,
    UsageLedgerModel,
)

__all__ = [
    # Connection management
    "DatabaseManager",
    "db",
    # Models
    "Base",
    "SubscriptionTierModel",
    "UsageLedgerModel",
]
