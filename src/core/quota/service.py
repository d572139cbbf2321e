"""
QuotaService - Facade over the quota engine components.

Wires one store into the components that share it:
- TierCatalog: cached tier lookups and admin updates
- QuotaGuard: admission checks and ledger lifecycle
- PeriodResetScheduler: periodic counter resets
- ConsistencyAuditor: on-demand ledger repair
"""

import logging
from typing import List, Optional

from src.core.patterns import ThreadSafeSingleton

from .auditor import ConsistencyAuditor
from .config import QuotaConfig
from .quota_guard import QuotaGuard
from .reset_scheduler import PeriodResetScheduler
from .schemas import AdmissionDecision, AuditReport, SweepReport, Tier, UsageRow
from .store import InMemoryUsageStore, UsageStore
from .tier_catalog import TierCatalog

logger = logging.getLogger(__name__)


def create_store(config: QuotaConfig) -> UsageStore:
    """Pick the ledger backend for the configuration."""
    if config.use_database:
        from .sql_store import SQLUsageStore
        return SQLUsageStore()

    logger.warning("DATABASE_ENABLED=false - usage ledger is in-memory and not shared between processes")
    return InMemoryUsageStore()


class QuotaService(ThreadSafeSingleton):
    """
    Facade for message quota enforcement.

    Thread-safe singleton; components are built once from QuotaConfig.
    """

    def _initialize(self) -> None:
        self._config = QuotaConfig()
        self._store = create_store(self._config)
        self._catalog = TierCatalog(
            self._store,
            cache_ttl_seconds=self._config.tier_cache_ttl_seconds,
            default_tier_name=self._config.default_tier,
        )
        self._guard = QuotaGuard(self._store, self._catalog, self._config)
        self._scheduler = PeriodResetScheduler(self._store, self._config)
        self._auditor = ConsistencyAuditor(self._store, self._catalog, self._config)
        logger.info(
            f"QuotaService initialized: store={type(self._store).__name__}, "
            f"default_tier={self._config.default_tier}, "
            f"storage_failure_policy={self._config.storage_failure_policy}"
        )

    # =========================================================================
    # Component accessors
    # =========================================================================

    @property
    def config(self) -> QuotaConfig:
        return self._config

    @property
    def store(self) -> UsageStore:
        return self._store

    @property
    def catalog(self) -> TierCatalog:
        return self._catalog

    @property
    def guard(self) -> QuotaGuard:
        return self._guard

    @property
    def scheduler(self) -> PeriodResetScheduler:
        return self._scheduler

    @property
    def auditor(self) -> ConsistencyAuditor:
        return self._auditor

    # =========================================================================
    # Admission (delegates to QuotaGuard)
    # =========================================================================

    async def check_and_consume(
        self,
        user_id: str,
        tier_name: Optional[str] = None,
    ) -> AdmissionDecision:
        return await self._guard.check_and_consume(user_id, tier_name)

    async def check_and_consume_or_raise(
        self,
        user_id: str,
        tier_name: Optional[str] = None,
    ) -> AdmissionDecision:
        return await self._guard.check_and_consume_or_raise(user_id, tier_name)

    async def peek(self, user_id: str) -> AdmissionDecision:
        return await self._guard.peek(user_id)

    async def enroll(self, user_id: str, tier_name: Optional[str] = None) -> UsageRow:
        return await self._guard.enroll(user_id, tier_name)

    async def change_tier(self, user_id: str, tier_name: str) -> UsageRow:
        return await self._guard.change_tier(user_id, tier_name)

    async def get_usage(self, user_id: str) -> Optional[UsageRow]:
        return await self._guard.get_usage(user_id)

    # =========================================================================
    # Tier catalog (delegates to TierCatalog)
    # =========================================================================

    async def list_tiers(self, include_inactive: bool = False) -> List[Tier]:
        return await self._catalog.list(include_inactive=include_inactive)

    async def get_tier(self, tier_name: str) -> Tier:
        return await self._catalog.get(tier_name)

    async def upsert_tier(self, tier: Tier) -> Tier:
        return await self._catalog.upsert(tier)

    async def seed_default_tiers(self, overwrite: bool = False) -> List[Tier]:
        return await self._catalog.seed_defaults(overwrite=overwrite)

    # =========================================================================
    # Operational triggers
    # =========================================================================

    async def run_reset_sweep(self) -> SweepReport:
        return await self._scheduler.sweep()

    async def run_audit(self, dry_run: bool = False) -> AuditReport:
        return await self._auditor.run(dry_run=dry_run)

    def start_scheduler(self) -> None:
        if not self._config.reset_scheduler_enabled:
            logger.info("Period reset task disabled (PERIOD_RESET_ENABLED=false)")
            return
        self._scheduler.start()

    async def stop_scheduler(self) -> None:
        await self._scheduler.stop()

    async def close(self) -> None:
        """Stop background work and release the store."""
        await self._scheduler.stop()
        await self._store.close()


# Singleton accessor
def get_quota_service() -> QuotaService:
    """Get singleton QuotaService instance."""
    return QuotaService.get_instance()


__all__ = [
    "QuotaService",
    "get_quota_service",
    "create_store",
]
