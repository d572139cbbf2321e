"""Tests for QuotaConfig parsing and the QuotaService facade."""

import pytest
from pydantic import ValidationError

from src.core.quota import (
    InMemoryUsageStore,
    QuotaConfig,
    QuotaService,
    get_quota_service,
)


class TestQuotaConfig:

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_ENABLED", "false")
        monkeypatch.setenv("QUOTA_DEFAULT_TIER", "pro")
        monkeypatch.setenv("QUOTA_PERIOD_MONTHS", "3")
        monkeypatch.setenv("QUOTA_STORAGE_FAILURE_POLICY", "RAISE")
        monkeypatch.setenv("PERIOD_RESET_INTERVAL_SECONDS", "600")

        config = QuotaConfig()

        assert config.use_database is False
        assert config.default_tier == "pro"
        assert config.period_months == 3
        assert config.storage_failure_policy == "raise"
        assert config.reset_interval_seconds == 600

    def test_defaults(self, memory_env):
        config = QuotaConfig()

        assert config.default_tier == "freemium"
        assert config.period_months == 1
        assert config.storage_failure_policy == "deny"
        assert config.tier_cache_ttl_seconds == 3600

    def test_non_integer_env_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("QUOTA_PERIOD_MONTHS", "monthly")

        assert QuotaConfig().period_months == 1

    @pytest.mark.parametrize("months", [0, 13, -1])
    def test_rejects_period_out_of_range(self, months):
        with pytest.raises(ValidationError):
            QuotaConfig(use_database=False, period_months=months)

    def test_rejects_unknown_storage_policy(self):
        with pytest.raises(ValidationError):
            QuotaConfig(use_database=False, storage_failure_policy="allow")

    def test_rejects_zero_reset_interval(self):
        with pytest.raises(ValidationError):
            QuotaConfig(use_database=False, reset_interval_seconds=0)


class TestQuotaService:

    def test_singleton(self, memory_env):
        assert get_quota_service() is get_quota_service()

    def test_in_memory_store_when_database_disabled(self, memory_env):
        service = get_quota_service()

        assert isinstance(service.store, InMemoryUsageStore)
        assert service.catalog.default_tier_name == "freemium"

    def test_sql_store_when_database_enabled(self, memory_env, monkeypatch):
        from src.core.quota.sql_store import SQLUsageStore

        monkeypatch.setenv("DATABASE_ENABLED", "true")
        QuotaService.reset_instance()

        assert isinstance(get_quota_service().store, SQLUsageStore)

    @pytest.mark.asyncio
    async def test_end_to_end_on_memory_store(self, memory_env):
        service = get_quota_service()
        await service.seed_default_tiers()

        await service.enroll("user-1")
        for _ in range(10):
            assert (await service.check_and_consume("user-1")).allowed is True
        assert (await service.check_and_consume("user-1")).allowed is False

        status = await service.peek("user-1")
        assert status.remaining == 0

        await service.change_tier("user-1", "pro")
        assert (await service.check_and_consume("user-1")).unlimited is True

        sweep = await service.run_reset_sweep()
        assert sweep.checked == 1
        assert sweep.reset == 0

        audit = await service.run_audit()
        assert audit.total_corrected == 0
        assert audit.tier_distribution == {"pro": 1}

    @pytest.mark.asyncio
    async def test_start_scheduler_respects_disabled_flag(self, memory_env):
        service = get_quota_service()

        service.start_scheduler()

        assert service.scheduler.running is False
        await service.close()
