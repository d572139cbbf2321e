"""
Persistence interface for the tier catalog and the usage ledger.

Every per-user mutation is a single conditional step: it either applies
against the state it was predicated on or reports that it did not. Callers
never read-modify-write a ledger row themselves.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from .periods import ensure_aware, is_due, next_reset_at, utcnow
from .schemas import Tier, UsageRow

logger = logging.getLogger(__name__)


class UsageStore(ABC):
    """
    Storage contract consumed by the quota engine.

    Implementations:
    - InMemoryUsageStore: per-user asyncio locks, for tests and DATABASE_ENABLED=false
    - SQLUsageStore: conditional UPDATE statements against PostgreSQL
    """

    # =========================================================================
    # Tier catalog
    # =========================================================================

    @abstractmethod
    async def load_tier(self, name: str) -> Optional[Tier]:
        """Return the tier or None when absent."""

    @abstractmethod
    async def save_tier(self, tier: Tier) -> Tier:
        """Insert or update a tier by name."""

    @abstractmethod
    async def list_tiers(self, include_inactive: bool = False) -> List[Tier]:
        """Return tiers ordered by sort_order."""

    # =========================================================================
    # Usage ledger
    # =========================================================================

    @abstractmethod
    async def load_usage(self, user_id: str) -> Optional[UsageRow]:
        """Return the user's ledger row or None."""

    @abstractmethod
    async def create_usage(
        self,
        user_id: str,
        tier_name: str,
        period_reset_at: datetime,
    ) -> UsageRow:
        """Create the row with zero usage. Returns the existing row if present."""

    @abstractmethod
    async def conditional_increment(
        self,
        user_id: str,
        allowance: int,
        now: datetime,
    ) -> bool:
        """
        Increment messages_used by one.

        Applies only if messages_used < allowance and the period has not
        ended at ``now``. Returns True iff the increment was applied.
        """

    @abstractmethod
    async def record_unmetered(self, user_id: str, now: datetime) -> bool:
        """Count a message for an unmetered tier (analytics only)."""

    @abstractmethod
    async def compare_and_reset(
        self,
        user_id: str,
        expected_reset_at: datetime,
        new_reset_at: datetime,
    ) -> bool:
        """
        Zero messages_used and move period_reset_at to ``new_reset_at``.

        Applies only if period_reset_at still equals ``expected_reset_at``.
        """

    @abstractmethod
    def list_usage_rows(self) -> AsyncIterator[UsageRow]:
        """Iterate every ledger row."""

    @abstractmethod
    async def update_usage(
        self,
        user_id: str,
        expected: Optional[Dict[str, Any]] = None,
        **fields,
    ) -> bool:
        """
        Overwrite the given ledger fields.

        When ``expected`` is given, the write applies only if each named field
        still holds the expected value (None matches a null field). Returns
        False if the row is missing or the precondition no longer holds.
        """

    async def close(self) -> None:
        """Release store resources."""

    # =========================================================================
    # Shared conditional reset
    # =========================================================================

    async def reset_if_due(
        self,
        user_id: str,
        now: datetime,
        period_months: int,
    ) -> bool:
        """
        Reset the row if its period has ended.

        Used by both the lazy reset on the admission path and the scheduled
        sweep. Returns True iff this call applied the reset; a row that is
        not due, or that another caller reset first, returns False.
        """
        row = await self.load_usage(user_id)
        if row is None or row.period_reset_at is None:
            return False
        if not is_due(row.period_reset_at, now):
            return False

        new_reset_at = next_reset_at(row.period_reset_at, now, period_months)
        applied = await self.compare_and_reset(user_id, row.period_reset_at, new_reset_at)
        if applied:
            logger.info(
                f"Reset message counter for user {user_id}: "
                f"used={row.messages_used}, next reset {new_reset_at.isoformat()}"
            )
        else:
            logger.debug(f"Reset for user {user_id} already applied by another caller")
        return applied


class InMemoryUsageStore(UsageStore):
    """
    Process-local store guarded by one asyncio.Lock per user.

    Only suitable for a single process; rows are lost on restart.
    """

    def __init__(self):
        self._tiers: Dict[str, Tier] = {}
        self._rows: Dict[str, UsageRow] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def load_tier(self, name: str) -> Optional[Tier]:
        tier = self._tiers.get(name)
        return tier.model_copy(deep=True) if tier else None

    async def save_tier(self, tier: Tier) -> Tier:
        self._tiers[tier.name] = tier.model_copy(deep=True)
        return tier

    async def list_tiers(self, include_inactive: bool = False) -> List[Tier]:
        tiers = [
            t.model_copy(deep=True)
            for t in self._tiers.values()
            if include_inactive or t.is_active
        ]
        return sorted(tiers, key=lambda t: (t.sort_order, t.name))

    async def load_usage(self, user_id: str) -> Optional[UsageRow]:
        row = self._rows.get(user_id)
        return row.model_copy() if row else None

    async def create_usage(
        self,
        user_id: str,
        tier_name: str,
        period_reset_at: datetime,
    ) -> UsageRow:
        async with self._locks[user_id]:
            existing = self._rows.get(user_id)
            if existing is not None:
                return existing.model_copy()

            now = utcnow()
            row = UsageRow(
                user_id=user_id,
                tier_name=tier_name,
                messages_used=0,
                period_reset_at=ensure_aware(period_reset_at),
                created_at=now,
                updated_at=now,
            )
            self._rows[user_id] = row
            return row.model_copy()

    async def conditional_increment(
        self,
        user_id: str,
        allowance: int,
        now: datetime,
    ) -> bool:
        async with self._locks[user_id]:
            row = self._rows.get(user_id)
            if row is None or row.period_reset_at is None:
                return False
            if is_due(row.period_reset_at, now):
                return False
            used = row.messages_used or 0
            if used >= allowance:
                return False
            row.messages_used = used + 1
            row.updated_at = utcnow()
            return True

    async def record_unmetered(self, user_id: str, now: datetime) -> bool:
        async with self._locks[user_id]:
            row = self._rows.get(user_id)
            if row is None:
                return False
            if row.period_reset_at is not None and is_due(row.period_reset_at, now):
                return False
            row.messages_used = (row.messages_used or 0) + 1
            row.updated_at = utcnow()
            return True

    async def compare_and_reset(
        self,
        user_id: str,
        expected_reset_at: datetime,
        new_reset_at: datetime,
    ) -> bool:
        async with self._locks[user_id]:
            row = self._rows.get(user_id)
            if row is None or row.period_reset_at is None:
                return False
            if ensure_aware(row.period_reset_at) != ensure_aware(expected_reset_at):
                return False
            row.messages_used = 0
            row.period_reset_at = ensure_aware(new_reset_at)
            row.updated_at = utcnow()
            return True

    async def list_usage_rows(self) -> AsyncIterator[UsageRow]:
        for user_id in list(self._rows):
            row = self._rows.get(user_id)
            if row is not None:
                yield row.model_copy()

    async def update_usage(
        self,
        user_id: str,
        expected: Optional[Dict[str, Any]] = None,
        **fields,
    ) -> bool:
        for key in list(fields) + list(expected or {}):
            if key not in UsageRow.model_fields or key == "user_id":
                raise ValueError(f"Unknown ledger field: {key}")

        async with self._locks[user_id]:
            row = self._rows.get(user_id)
            if row is None:
                return False
            for key, value in (expected or {}).items():
                if getattr(row, key) != value:
                    return False
            for key, value in fields.items():
                setattr(row, key, value)
            row.updated_at = utcnow()
            return True

    def put_usage(self, row: UsageRow) -> None:
        """Store a row as-is, bypassing validation (fixtures and imports)."""
        self._rows[row.user_id] = row.model_copy()


__all__ = [
    "UsageStore",
    "InMemoryUsageStore",
]
