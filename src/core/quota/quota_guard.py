"""
QuotaGuard - Admission check on the request path.

Each check resolves the user's ledger row, rolls a stale period forward,
resolves the tier and applies a single conditional increment. The decision
is always computed against the current period.
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from src.constants import (
    FAULT_STORAGE_UNAVAILABLE,
    FAULT_UNKNOWN_TIER,
    MAX_CAS_ATTEMPTS,
    STORAGE_POLICY_RAISE,
)

from .config import QuotaConfig
from .exceptions import QuotaExceededException, StorageUnavailable, UnknownTier
from .periods import first_reset_at, is_due, next_reset_at, utcnow
from .schemas import AdmissionDecision, Tier, TierName, UsageRow
from .store import UsageStore
from .tier_catalog import TierCatalog

logger = logging.getLogger(__name__)


class QuotaGuard:
    """
    Evaluates and records message admissions.

    Failure handling:
    - UnknownTier is contained: the request is denied with fault="unknown_tier"
    - StorageUnavailable follows QuotaConfig.storage_failure_policy
    """

    def __init__(
        self,
        store: UsageStore,
        catalog: TierCatalog,
        config: Optional[QuotaConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._catalog = catalog
        self._config = config or QuotaConfig()
        self._clock = clock

    @property
    def period_months(self) -> int:
        return self._config.period_months

    # =========================================================================
    # Admission
    # =========================================================================

    async def check_and_consume(
        self,
        user_id: str,
        tier_name: Optional[str] = None,
    ) -> AdmissionDecision:
        """
        Decide whether the user may send one more message and record it.

        Args:
            user_id: Caller's user ID
            tier_name: Tier for a row created by this call; ignored when the
                user already has a ledger row

        Returns:
            AdmissionDecision. ``remaining`` is None for unmetered tiers.
        """
        try:
            return await self._check_and_consume(user_id, tier_name)
        except StorageUnavailable as e:
            return self._storage_fault(user_id, e)

    async def peek(self, user_id: str) -> AdmissionDecision:
        """
        Report what check_and_consume would decide, without writing.

        A missing row or a stale period is evaluated as the fresh period the
        next check would open.
        """
        try:
            return await self._peek(user_id)
        except StorageUnavailable as e:
            return self._storage_fault(user_id, e)

    async def check_and_consume_or_raise(
        self,
        user_id: str,
        tier_name: Optional[str] = None,
    ) -> AdmissionDecision:
        """
        Check and consume, raising instead of returning a denial.

        Raises:
            QuotaExceededException: allowance used up for this period
            UnknownTier: the user's tier is not in the catalog
            StorageUnavailable: the ledger could not be reached
        """
        decision = await self.check_and_consume(user_id, tier_name)

        if decision.fault == FAULT_STORAGE_UNAVAILABLE:
            raise StorageUnavailable("check_and_consume")
        if decision.fault == FAULT_UNKNOWN_TIER:
            raise UnknownTier(decision.tier, user_id)

        if not decision.allowed:
            upgrade_tier, upgrade_message, upgrade_url = self._get_upgrade_suggestion(decision.tier)
            raise QuotaExceededException(
                user_id=user_id,
                tier_name=decision.tier,
                messages_used=decision.messages_used,
                limit=decision.limit or 0,
                upgrade_tier=upgrade_tier,
                upgrade_message=upgrade_message,
                upgrade_url=upgrade_url,
            )

        # Log warning if approaching limit (>80%)
        if decision.limit:
            percentage = decision.messages_used / decision.limit * 100
            if percentage >= 80:
                logger.warning(
                    f"User {user_id} approaching message limit: "
                    f"{percentage:.1f}% used ({decision.messages_used:,}/{decision.limit:,})"
                )

        return decision

    async def _check_and_consume(
        self,
        user_id: str,
        tier_name: Optional[str],
    ) -> AdmissionDecision:
        now = self._clock()

        try:
            row = await self._ensure_row(user_id, tier_name, now)
        except UnknownTier as e:
            return self._unknown_tier(user_id, e.tier_name)

        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            row = await self._current_period(row, now)

            try:
                tier = await self._catalog.get(row.tier_name)
            except UnknownTier:
                return self._unknown_tier(user_id, row.tier_name, row)

            if tier.is_unlimited:
                applied = await self._store.record_unmetered(user_id, now)
            else:
                applied = await self._store.conditional_increment(
                    user_id, tier.monthly_allowance, now
                )

            observed = await self._store.load_usage(user_id)
            if observed is None:
                # Row vanished between steps; recreate on the next attempt
                row = await self._ensure_row(user_id, tier.name, now)
                continue

            if applied:
                return self._decision(user_id, tier, observed, allowed=True)

            if observed.period_reset_at is not None and is_due(observed.period_reset_at, now):
                logger.debug(
                    f"Period for user {user_id} went stale during check "
                    f"(attempt {attempt}/{MAX_CAS_ATTEMPTS}), retrying"
                )
                row = observed
                continue

            if tier.is_unlimited:
                # Unmetered increments only fail on a stale or missing period
                row = observed
                continue

            return self._decision(user_id, tier, observed, allowed=False)

        logger.warning(
            f"Quota check for user {user_id} gave up after {MAX_CAS_ATTEMPTS} attempts"
        )
        return AdmissionDecision(
            allowed=False,
            remaining=0,
            reset_at=row.period_reset_at,
            user_id=user_id,
            tier=row.tier_name,
            messages_used=row.messages_used or 0,
        )

    async def _peek(self, user_id: str) -> AdmissionDecision:
        now = self._clock()
        row = await self._store.load_usage(user_id)

        if row is None:
            messages_used = 0
            reset_at = first_reset_at(now, self.period_months)
            tier_name = self._catalog.default_tier_name
        else:
            messages_used, reset_at = self._effective_period(row, now)
            tier_name = row.tier_name

        try:
            tier = await self._catalog.get(tier_name)
        except UnknownTier:
            return self._unknown_tier(user_id, tier_name, row)

        virtual = UsageRow(
            user_id=user_id,
            tier_name=tier.name,
            messages_used=messages_used,
            period_reset_at=reset_at,
        )
        if tier.is_unlimited:
            return self._decision(user_id, tier, virtual, allowed=True)

        return self._decision(
            user_id,
            tier,
            virtual,
            allowed=messages_used < tier.monthly_allowance,
        )

    # =========================================================================
    # Ledger lifecycle
    # =========================================================================

    async def enroll(self, user_id: str, tier_name: Optional[str] = None) -> UsageRow:
        """
        Create the user's ledger row at account creation.

        Idempotent: an existing row is returned unchanged.

        Raises:
            UnknownTier: if tier_name is not in the catalog
        """
        tier = await self._catalog.get(tier_name or self._catalog.default_tier_name)
        row = await self._store.create_usage(
            user_id,
            tier.name,
            first_reset_at(self._clock(), self.period_months),
        )
        logger.debug(f"Enrolled user {user_id} on tier {row.tier_name}")
        return row

    async def change_tier(self, user_id: str, tier_name: str) -> UsageRow:
        """
        Move a user to another tier.

        The current period's counter is kept; a downgraded user whose usage
        already exceeds the new allowance is denied until the next reset.

        Raises:
            UnknownTier: if tier_name is not in the catalog
        """
        tier = await self._catalog.get(tier_name)

        row = await self._store.load_usage(user_id)
        if row is None:
            return await self.enroll(user_id, tier.name)

        if row.tier_name != tier.name:
            await self._store.update_usage(user_id, tier_name=tier.name)
            logger.info(f"User {user_id} moved from tier {row.tier_name} to {tier.name}")

        return await self._store.load_usage(user_id)

    async def get_usage(self, user_id: str) -> Optional[UsageRow]:
        """Return the user's raw ledger row, or None."""
        return await self._store.load_usage(user_id)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _ensure_row(
        self,
        user_id: str,
        tier_name: Optional[str],
        now: datetime,
    ) -> UsageRow:
        row = await self._store.load_usage(user_id)
        if row is not None:
            return row

        tier = await self._catalog.get(tier_name or self._catalog.default_tier_name)
        row = await self._store.create_usage(
            user_id, tier.name, first_reset_at(now, self.period_months)
        )
        logger.info(f"Opened usage ledger for user {user_id} on tier {row.tier_name}")
        return row

    async def _current_period(self, row: UsageRow, now: datetime) -> UsageRow:
        """Return the row with a non-stale period, resetting it if due."""
        updates = {}
        if row.period_reset_at is None:
            updates["period_reset_at"] = first_reset_at(now, self.period_months)
        if row.messages_used is None:
            updates["messages_used"] = 0
        if updates:
            logger.warning(
                f"Ledger row for user {row.user_id} missing {', '.join(sorted(updates))}, repairing"
            )
            # Only fill fields that are still null; a concurrent repair wins
            await self._store.update_usage(
                row.user_id, expected={key: None for key in updates}, **updates
            )
            return await self._reload(row)

        if is_due(row.period_reset_at, now):
            await self._store.reset_if_due(row.user_id, now, self.period_months)
            return await self._reload(row)

        return row

    async def _reload(self, row: UsageRow) -> UsageRow:
        fresh = await self._store.load_usage(row.user_id)
        return fresh if fresh is not None else row

    def _effective_period(self, row: UsageRow, now: datetime) -> Tuple[int, datetime]:
        """Counter and reset instant as the next check would see them."""
        if row.period_reset_at is None:
            return row.messages_used or 0, first_reset_at(now, self.period_months)
        if is_due(row.period_reset_at, now):
            return 0, next_reset_at(row.period_reset_at, now, self.period_months)
        return row.messages_used or 0, row.period_reset_at

    def _decision(
        self,
        user_id: str,
        tier: Tier,
        row: UsageRow,
        allowed: bool,
    ) -> AdmissionDecision:
        used = row.messages_used or 0
        if tier.is_unlimited:
            remaining, limit = None, None
        else:
            limit = tier.monthly_allowance
            remaining = max(0, limit - used)

        return AdmissionDecision(
            allowed=allowed,
            remaining=remaining,
            reset_at=row.period_reset_at,
            user_id=user_id,
            tier=tier.name,
            messages_used=used,
            limit=limit,
        )

    def _unknown_tier(
        self,
        user_id: str,
        tier_name: Optional[str],
        row: Optional[UsageRow] = None,
    ) -> AdmissionDecision:
        logger.error(
            f"User {user_id} references unknown tier {tier_name!r}; "
            f"denying until the ledger is repaired"
        )
        return AdmissionDecision(
            allowed=False,
            remaining=0,
            reset_at=row.period_reset_at if row else None,
            user_id=user_id,
            tier=tier_name,
            messages_used=(row.messages_used or 0) if row else 0,
            fault=FAULT_UNKNOWN_TIER,
        )

    def _storage_fault(self, user_id: str, error: StorageUnavailable) -> AdmissionDecision:
        if self._config.storage_failure_policy == STORAGE_POLICY_RAISE:
            raise error

        logger.error(f"Denying request for user {user_id}: {error.message}")
        return AdmissionDecision(
            allowed=False,
            remaining=0,
            user_id=user_id,
            fault=FAULT_STORAGE_UNAVAILABLE,
        )

    def _get_upgrade_suggestion(
        self, current_tier: Optional[str]
    ) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """Get upgrade suggestion based on current tier."""
        if current_tier == TierName.freemium.value:
            return (
                TierName.pro.value,
                "Upgrade to Pro for unlimited messages",
                f"/settings/billing?upgrade={TierName.pro.value}",
            )

        # Unmetered tiers never hit the limit
        return (None, None, None)


__all__ = [
    "QuotaGuard",
]
