"""
ConsistencyAuditor - Finds and repairs ledger rows that break the data model.

Checked per row:
- unknown_tier: tier_name null, empty or not in the catalog -> default tier
- missing_reset_at: period_reset_at null -> now + one period
- negative_usage: messages_used negative or null -> 0

Counters above a tier's allowance are left alone; they are legitimate after
a downgrade and clear at the next reset.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from src.constants import (
    AUDITED_INVARIANTS,
    INVARIANT_MISSING_RESET_AT,
    INVARIANT_NEGATIVE_USAGE,
    INVARIANT_UNKNOWN_TIER,
)

from .config import QuotaConfig
from .exceptions import StorageUnavailable
from .periods import first_reset_at, utcnow
from .schemas import AuditReport, UsageRow
from .store import UsageStore
from .tier_catalog import TierCatalog

logger = logging.getLogger(__name__)


class ConsistencyAuditor:
    """On-demand repair pass over the usage ledger."""

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

    async def run(self, dry_run: bool = False) -> AuditReport:
        """
        Audit every ledger row and repair violations.

        Args:
            dry_run: Count and list violations without writing

        Returns:
            AuditReport. Running again right after a non-dry run reports
            zero corrections.

        Raises:
            UnknownTier: if the configured default tier is not in the catalog
        """
        now = self._clock()
        default_tier = await self._catalog.get(self._catalog.default_tier_name)
        known_tiers = {t.name for t in await self._catalog.list(include_inactive=True)}

        report = AuditReport(
            found={name: 0 for name in AUDITED_INVARIANTS},
            corrected={name: 0 for name in AUDITED_INVARIANTS},
            dry_run=dry_run,
        )

        async for row in self._store.list_usage_rows():
            report.checked += 1
            repairs = self._find_violations(row, known_tiers, default_tier.name, now)

            final_tier = repairs.get("tier_name", row.tier_name)
            report.tier_distribution[final_tier] = report.tier_distribution.get(final_tier, 0) + 1

            if not repairs:
                continue

            violations = self._violation_names(repairs)
            for name in violations:
                report.found[name] += 1

            if dry_run:
                logger.info(
                    f"[DRY RUN] User {row.user_id}: would repair {', '.join(violations)}"
                )
                report.repaired_user_ids.append(row.user_id)
                continue

            observed = {key: getattr(row, key) for key in repairs}
            try:
                applied = await self._store.update_usage(row.user_id, expected=observed, **repairs)
            except StorageUnavailable as e:
                logger.error(f"Could not repair ledger row for user {row.user_id}: {e.message}")
                continue

            if not applied:
                report.skipped += 1
                logger.warning(
                    f"Ledger row for user {row.user_id} changed or disappeared during audit, skipped"
                )
                continue

            for name in violations:
                report.corrected[name] += 1
            report.repaired_user_ids.append(row.user_id)

            if INVARIANT_UNKNOWN_TIER in violations:
                logger.warning(
                    f"Repaired user {row.user_id}: tier {row.tier_name!r} -> {default_tier.name}"
                )
            else:
                logger.info(f"Repaired user {row.user_id}: {', '.join(violations)}")

        logger.info(
            f"Usage audit complete{' (dry run)' if dry_run else ''}: "
            f"checked={report.checked}, found={report.found}, corrected={report.corrected}"
        )
        return report

    def _find_violations(
        self,
        row: UsageRow,
        known_tiers: set,
        default_tier_name: str,
        now: datetime,
    ) -> Dict[str, Any]:
        """Return the field updates that bring the row back in line."""
        repairs: Dict[str, Any] = {}

        if not row.tier_name or row.tier_name not in known_tiers:
            repairs["tier_name"] = default_tier_name

        if row.period_reset_at is None:
            repairs["period_reset_at"] = first_reset_at(now, self._config.period_months)

        if row.messages_used is None or row.messages_used < 0:
            repairs["messages_used"] = 0

        return repairs

    @staticmethod
    def _violation_names(repairs: Dict[str, Any]) -> list:
        names = []
        if "tier_name" in repairs:
            names.append(INVARIANT_UNKNOWN_TIER)
        if "period_reset_at" in repairs:
            names.append(INVARIANT_MISSING_RESET_AT)
        if "messages_used" in repairs:
            names.append(INVARIANT_NEGATIVE_USAGE)
        return names


__all__ = [
    "ConsistencyAuditor",
]
