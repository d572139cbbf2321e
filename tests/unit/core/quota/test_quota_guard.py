"""
Tests for QuotaGuard admission checks.

Covers the allowance boundary, concurrent callers, lazy period rollover,
unmetered and zero-allowance tiers, integrity faults and storage faults.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from src.core.quota import (
    QuotaConfig,
    QuotaExceededException,
    QuotaGuard,
    StorageUnavailable,
    Tier,
    UnknownTier,
    UsageRow,
)


async def _set_allowance(catalog, allowance: int) -> None:
    await catalog.upsert(Tier(name="freemium", monthly_allowance=allowance))


class TestMeteredAdmission:
    """Allowance boundary for metered tiers."""

    @pytest.mark.asyncio
    async def test_first_n_allowed_then_denied(self, guard, catalog, store):
        await _set_allowance(catalog, 3)

        decisions = [await guard.check_and_consume("user-1") for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]
        assert (await store.load_usage("user-1")).messages_used == 3

    @pytest.mark.asyncio
    async def test_denial_does_not_increment(self, guard, catalog, store):
        await _set_allowance(catalog, 1)
        await guard.check_and_consume("user-1")

        for _ in range(5):
            decision = await guard.check_and_consume("user-1")
            assert decision.allowed is False

        assert (await store.load_usage("user-1")).messages_used == 1

    @pytest.mark.asyncio
    async def test_decision_fields(self, guard, clock):
        decision = await guard.check_and_consume("user-1")

        assert decision.allowed is True
        assert decision.user_id == "user-1"
        assert decision.tier == "freemium"
        assert decision.limit == 10
        assert decision.messages_used == 1
        assert decision.remaining == 9
        assert decision.reset_at == clock.now + timedelta(days=31)
        assert decision.fault is None

    @pytest.mark.asyncio
    async def test_concurrent_callers_never_over_grant(self, guard, catalog, store):
        await _set_allowance(catalog, 5)

        decisions = await asyncio.gather(
            *[guard.check_and_consume("user-1") for _ in range(25)]
        )

        assert sum(1 for d in decisions if d.allowed) == 5
        assert (await store.load_usage("user-1")).messages_used == 5

    @pytest.mark.asyncio
    async def test_users_are_independent(self, guard, catalog):
        await _set_allowance(catalog, 1)

        assert (await guard.check_and_consume("user-1")).allowed is True
        assert (await guard.check_and_consume("user-1")).allowed is False
        assert (await guard.check_and_consume("user-2")).allowed is True


class TestLedgerCreation:

    @pytest.mark.asyncio
    async def test_first_check_opens_row_on_default_tier(self, guard, store, clock):
        await guard.check_and_consume("new-user")

        row = await store.load_usage("new-user")
        assert row.tier_name == "freemium"
        assert row.messages_used == 1
        assert row.period_reset_at == clock.now + timedelta(days=31)

    @pytest.mark.asyncio
    async def test_first_check_uses_given_tier(self, guard, store):
        decision = await guard.check_and_consume("new-user", tier_name="pro")

        assert decision.unlimited
        assert (await store.load_usage("new-user")).tier_name == "pro"

    @pytest.mark.asyncio
    async def test_given_tier_is_ignored_for_existing_row(self, guard, store):
        await guard.enroll("user-1", "freemium")

        decision = await guard.check_and_consume("user-1", tier_name="enterprise")

        assert decision.tier == "freemium"
        assert (await store.load_usage("user-1")).tier_name == "freemium"

    @pytest.mark.asyncio
    async def test_first_check_with_unknown_tier_is_denied(self, guard, store):
        decision = await guard.check_and_consume("new-user", tier_name="bogus")

        assert decision.allowed is False
        assert decision.fault == "unknown_tier"
        assert await store.load_usage("new-user") is None

    @pytest.mark.asyncio
    async def test_enroll_is_idempotent(self, guard, store):
        first = await guard.enroll("user-1", "team")
        await store.update_usage("user-1", messages_used=4)
        second = await guard.enroll("user-1", "pro")

        assert first.tier_name == "team"
        assert second.tier_name == "team"
        assert second.messages_used == 4

    @pytest.mark.asyncio
    async def test_enroll_unknown_tier_raises(self, guard):
        with pytest.raises(UnknownTier):
            await guard.enroll("user-1", "bogus")


class TestPeriodRollover:

    @pytest.mark.asyncio
    async def test_exhausted_row_past_reset_is_admitted(self, guard, catalog, store, clock):
        await _set_allowance(catalog, 3)
        store.put_usage(UsageRow(
            user_id="user-1",
            tier_name="freemium",
            messages_used=3,
            period_reset_at=clock.now - timedelta(seconds=1),
        ))

        decision = await guard.check_and_consume("user-1")

        assert decision.allowed is True
        assert decision.remaining == 2
        row = await store.load_usage("user-1")
        assert row.messages_used == 1
        assert row.period_reset_at > clock.now

    @pytest.mark.asyncio
    async def test_rollover_keeps_account_anchor(self, guard, store, clock):
        boundary = clock.now - timedelta(hours=6)
        store.put_usage(UsageRow(
            user_id="user-1",
            tier_name="freemium",
            messages_used=10,
            period_reset_at=boundary,
        ))

        await guard.check_and_consume("user-1")

        row = await store.load_usage("user-1")
        assert row.period_reset_at == boundary.replace(month=boundary.month + 1)

    @pytest.mark.asyncio
    async def test_check_one_second_after_boundary(self, guard, catalog, clock):
        await _set_allowance(catalog, 2)
        await guard.check_and_consume("user-1")
        await guard.check_and_consume("user-1")
        assert (await guard.check_and_consume("user-1")).allowed is False

        reset_at = (await guard.get_usage("user-1")).period_reset_at
        clock.now = reset_at + timedelta(seconds=1)

        decision = await guard.check_and_consume("user-1")
        assert decision.allowed is True
        assert decision.messages_used == 1

    @pytest.mark.asyncio
    async def test_row_missing_reset_instant_is_repaired_inline(self, guard, store, clock):
        store.put_usage(UsageRow(user_id="user-1", tier_name="freemium", messages_used=2, period_reset_at=None))

        decision = await guard.check_and_consume("user-1")

        assert decision.allowed is True
        row = await store.load_usage("user-1")
        assert row.period_reset_at == clock.now + timedelta(days=31)
        assert row.messages_used == 3


class TestPeek:

    @pytest.mark.asyncio
    async def test_peek_does_not_mutate(self, guard, catalog, store):
        await _set_allowance(catalog, 2)
        await guard.check_and_consume("user-1")
        before = await store.load_usage("user-1")

        for _ in range(10):
            decision = await guard.peek("user-1")
            assert decision.allowed is True
            assert decision.remaining == 1

        assert await store.load_usage("user-1") == before
        assert (await guard.check_and_consume("user-1")).allowed is True
        assert (await guard.check_and_consume("user-1")).allowed is False

    @pytest.mark.asyncio
    async def test_peek_unknown_user_does_not_create_row(self, guard, store, clock):
        decision = await guard.peek("ghost")

        assert decision.allowed is True
        assert decision.remaining == 10
        assert decision.reset_at == clock.now + timedelta(days=31)
        assert await store.load_usage("ghost") is None

    @pytest.mark.asyncio
    async def test_peek_stale_period_reports_fresh_counter(self, guard, store, clock):
        stale = UsageRow(
            user_id="user-1",
            tier_name="freemium",
            messages_used=10,
            period_reset_at=clock.now - timedelta(days=1),
        )
        store.put_usage(stale)

        decision = await guard.peek("user-1")

        assert decision.allowed is True
        assert decision.messages_used == 0
        assert decision.reset_at > clock.now
        assert (await store.load_usage("user-1")).messages_used == 10

    @pytest.mark.asyncio
    async def test_peek_exhausted(self, guard, catalog):
        await _set_allowance(catalog, 1)
        await guard.check_and_consume("user-1")

        decision = await guard.peek("user-1")
        assert decision.allowed is False
        assert decision.remaining == 0


class TestUnmeteredTier:

    @pytest.mark.asyncio
    async def test_ten_thousand_checks_all_allowed(self, guard, store):
        await guard.enroll("user-1", "pro")

        for _ in range(10_000):
            decision = await guard.check_and_consume("user-1")
            assert decision.allowed is True
            assert decision.remaining is None

        # Counted for analytics only
        assert (await store.load_usage("user-1")).messages_used == 10_000

    @pytest.mark.asyncio
    async def test_unmetered_decision_has_no_limit(self, guard):
        await guard.enroll("user-1", "enterprise")

        decision = await guard.check_and_consume("user-1")
        assert decision.unlimited is True
        assert decision.limit is None


class TestZeroAllowance:

    @pytest.mark.asyncio
    async def test_zero_allowance_always_denies(self, guard, catalog, store):
        await _set_allowance(catalog, 0)

        decision = await guard.check_and_consume("user-1")

        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.fault is None
        assert (await store.load_usage("user-1")).messages_used == 0

    @pytest.mark.asyncio
    async def test_zero_allowance_denies_right_after_reset(self, guard, catalog, store, clock):
        await _set_allowance(catalog, 0)
        store.put_usage(UsageRow(
            user_id="user-1",
            tier_name="freemium",
            messages_used=0,
            period_reset_at=clock.now - timedelta(minutes=1),
        ))

        decision = await guard.check_and_consume("user-1")

        assert decision.allowed is False
        assert (await store.load_usage("user-1")).period_reset_at > clock.now


class TestUnknownTier:

    @pytest.mark.asyncio
    async def test_bogus_tier_denies_with_fault(self, guard, store, clock):
        store.put_usage(UsageRow(
            user_id="user-1",
            tier_name="bogus",
            messages_used=0,
            period_reset_at=clock.now + timedelta(days=3),
        ))

        decision = await guard.check_and_consume("user-1")

        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.fault == "unknown_tier"
        assert decision.tier == "bogus"
        assert (await store.load_usage("user-1")).messages_used == 0

    @pytest.mark.asyncio
    async def test_bogus_tier_peek_denies(self, guard, store, clock):
        store.put_usage(UsageRow(
            user_id="user-1",
            tier_name="",
            messages_used=0,
            period_reset_at=clock.now + timedelta(days=3),
        ))

        decision = await guard.peek("user-1")
        assert decision.allowed is False
        assert decision.fault == "unknown_tier"

    @pytest.mark.asyncio
    async def test_or_raise_surfaces_unknown_tier(self, guard, store, clock):
        store.put_usage(UsageRow(
            user_id="user-1",
            tier_name="free",
            messages_used=0,
            period_reset_at=clock.now + timedelta(days=3),
        ))

        with pytest.raises(UnknownTier) as exc_info:
            await guard.check_and_consume_or_raise("user-1")

        assert exc_info.value.tier_name == "free"
        assert exc_info.value.user_id == "user-1"


class TestStorageFailure:

    @pytest.mark.asyncio
    async def test_deny_policy_returns_typed_denial(self, guard, store):
        with patch.object(store, "load_usage", new=AsyncMock(side_effect=StorageUnavailable("load_usage"))):
            decision = await guard.check_and_consume("user-1")

        assert decision.allowed is False
        assert decision.fault == "storage_unavailable"

    @pytest.mark.asyncio
    async def test_deny_policy_applies_to_peek(self, guard, store):
        with patch.object(store, "load_usage", new=AsyncMock(side_effect=StorageUnavailable("load_usage"))):
            decision = await guard.peek("user-1")

        assert decision.fault == "storage_unavailable"

    @pytest.mark.asyncio
    async def test_raise_policy_propagates(self, store, catalog, clock):
        config = QuotaConfig(use_database=False, storage_failure_policy="raise")
        guard = QuotaGuard(store, catalog, config, clock=clock)

        with patch.object(
            store, "conditional_increment",
            new=AsyncMock(side_effect=StorageUnavailable("conditional_increment")),
        ):
            with pytest.raises(StorageUnavailable) as exc_info:
                await guard.check_and_consume("user-1")

        assert exc_info.value.operation == "conditional_increment"

    @pytest.mark.asyncio
    async def test_or_raise_surfaces_storage_fault(self, guard, store):
        with patch.object(store, "load_usage", new=AsyncMock(side_effect=StorageUnavailable("load_usage"))):
            with pytest.raises(StorageUnavailable):
                await guard.check_and_consume_or_raise("user-1")


class TestCheckAndConsumeOrRaise:

    @pytest.mark.asyncio
    async def test_exhausted_freemium_suggests_pro(self, guard, catalog):
        await _set_allowance(catalog, 1)
        await guard.check_and_consume_or_raise("user-1")

        with pytest.raises(QuotaExceededException) as exc_info:
            await guard.check_and_consume_or_raise("user-1")

        exc = exc_info.value
        assert exc.tier_name == "freemium"
        assert exc.messages_used == 1
        assert exc.limit == 1
        assert exc.upgrade_tier == "pro"

        body = exc.to_response_dict()
        assert body["error"] == "message_limit_exceeded"
        assert body["upgrade"]["tier"] == "pro"
        assert body["upgrade"]["url"] == "/settings/billing?upgrade=pro"

    @pytest.mark.asyncio
    async def test_returns_decision_when_allowed(self, guard):
        decision = await guard.check_and_consume_or_raise("user-1")
        assert decision.allowed is True


class TestChangeTier:

    @pytest.mark.asyncio
    async def test_upgrade_lifts_the_limit_without_new_row(self, guard, catalog, store):
        await _set_allowance(catalog, 1)
        await guard.check_and_consume("user-1")
        assert (await guard.check_and_consume("user-1")).allowed is False

        row = await guard.change_tier("user-1", "pro")

        assert row.tier_name == "pro"
        assert row.messages_used == 1
        assert (await guard.check_and_consume("user-1")).allowed is True

    @pytest.mark.asyncio
    async def test_change_tier_for_new_user_enrolls(self, guard, store):
        row = await guard.change_tier("user-1", "team")

        assert row.tier_name == "team"
        assert row.messages_used == 0

    @pytest.mark.asyncio
    async def test_change_to_unknown_tier_raises(self, guard, store):
        await guard.enroll("user-1")

        with pytest.raises(UnknownTier):
            await guard.change_tier("user-1", "bogus")

        assert (await store.load_usage("user-1")).tier_name == "freemium"
