"""Shared test fixtures and configuration."""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


# =============================================================================
# Environment Variable Fixtures
# =============================================================================

@pytest.fixture
def memory_env(monkeypatch):
    """Run the service on the in-memory ledger without background work."""
    monkeypatch.setenv("DATABASE_ENABLED", "false")
    monkeypatch.setenv("PERIOD_RESET_ENABLED", "false")
    monkeypatch.setenv("SEED_TIERS_ON_STARTUP", "false")
    monkeypatch.delenv("ADMIN_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY_REQUIRED", raising=False)
    monkeypatch.delenv("QUOTA_DEFAULT_TIER", raising=False)
    monkeypatch.delenv("QUOTA_PERIOD_MONTHS", raising=False)
    monkeypatch.delenv("QUOTA_STORAGE_FAILURE_POLICY", raising=False)


# =============================================================================
# Quota Service Singleton Reset
# =============================================================================

@pytest.fixture(autouse=True)
def reset_quota_service_singleton():
    """Reset the QuotaService singleton before and after each test."""
    from src.core.quota.service import QuotaService

    QuotaService.reset_instance()
    yield
    QuotaService.reset_instance()


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Settable clock passed to the guard, scheduler and auditor."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    """Clock frozen at 2024-01-15 12:00 UTC."""
    return FakeClock(datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc))


# =============================================================================
# Quota Engine Fixtures
# =============================================================================

@pytest.fixture
def quota_config():
    """QuotaConfig that does not depend on the environment."""
    from src.core.quota import QuotaConfig

    return QuotaConfig(
        use_database=False,
        default_tier="freemium",
        period_months=1,
        storage_failure_policy="deny",
        tier_cache_ttl_seconds=3600,
        reset_interval_seconds=3600,
        reset_scheduler_enabled=False,
    )


@pytest.fixture
def store():
    """Empty in-memory usage store."""
    from src.core.quota import InMemoryUsageStore

    return InMemoryUsageStore()


@pytest_asyncio.fixture
async def catalog(store):
    """Tier catalog seeded with the default tiers."""
    from src.core.quota import TierCatalog

    catalog = TierCatalog(store, cache_ttl_seconds=3600, default_tier_name="freemium")
    await catalog.seed_defaults()
    return catalog


@pytest.fixture
def guard(store, catalog, quota_config, clock):
    """QuotaGuard over the seeded in-memory store."""
    from src.core.quota import QuotaGuard

    return QuotaGuard(store, catalog, quota_config, clock=clock)


@pytest.fixture
def scheduler(store, quota_config, clock):
    """PeriodResetScheduler over the in-memory store."""
    from src.core.quota import PeriodResetScheduler

    return PeriodResetScheduler(store, quota_config, clock=clock)


@pytest.fixture
def auditor(store, catalog, quota_config, clock):
    """ConsistencyAuditor over the seeded in-memory store."""
    from src.core.quota import ConsistencyAuditor

    return ConsistencyAuditor(store, catalog, quota_config, clock=clock)


# =============================================================================
# Integration Test Markers
# =============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires a real PostgreSQL database)"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION_TESTS is set."""
    if not os.getenv("RUN_INTEGRATION_TESTS"):
        skip_integration = pytest.mark.skip(
            reason="Set RUN_INTEGRATION_TESTS=1 to run integration tests"
        )
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)
