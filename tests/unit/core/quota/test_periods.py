"""Tests for billing period arithmetic."""

from datetime import datetime, timezone

import pytest

from src.core.quota.periods import (
    add_months,
    ensure_aware,
    first_reset_at,
    is_due,
    next_reset_at,
)

UTC = timezone.utc


class TestAddMonths:

    def test_adds_within_year(self):
        assert add_months(datetime(2024, 3, 10, 8, 30, tzinfo=UTC), 1) == datetime(2024, 4, 10, 8, 30, tzinfo=UTC)

    def test_rolls_over_year(self):
        assert add_months(datetime(2024, 12, 5, tzinfo=UTC), 1) == datetime(2025, 1, 5, tzinfo=UTC)

    def test_clamps_to_end_of_short_month(self):
        assert add_months(datetime(2024, 1, 31, tzinfo=UTC), 1) == datetime(2024, 2, 29, tzinfo=UTC)
        assert add_months(datetime(2023, 1, 31, tzinfo=UTC), 1) == datetime(2023, 2, 28, tzinfo=UTC)

    def test_multiple_months(self):
        assert add_months(datetime(2024, 11, 30, tzinfo=UTC), 3) == datetime(2025, 2, 28, tzinfo=UTC)


class TestNextResetAt:

    def test_advances_from_previous_boundary_not_now(self):
        """A late sweep keeps the account's boundary."""
        previous = datetime(2024, 1, 15, 0, 0, tzinfo=UTC)
        now = datetime(2024, 1, 15, 3, 0, tzinfo=UTC)

        assert next_reset_at(previous, now) == datetime(2024, 2, 15, 0, 0, tzinfo=UTC)

    def test_skips_missed_periods(self):
        previous = datetime(2024, 1, 31, tzinfo=UTC)
        now = datetime(2024, 4, 1, tzinfo=UTC)

        assert next_reset_at(previous, now) == datetime(2024, 4, 30, tzinfo=UTC)

    def test_clamped_day_does_not_compound(self):
        """Stepping from Jan 31 through February still lands on Mar 31."""
        previous = datetime(2024, 1, 31, tzinfo=UTC)
        now = datetime(2024, 3, 1, tzinfo=UTC)

        assert next_reset_at(previous, now) == datetime(2024, 3, 31, tzinfo=UTC)

    def test_result_is_always_after_now(self):
        previous = datetime(2024, 1, 15, tzinfo=UTC)
        now = datetime(2024, 2, 15, tzinfo=UTC)  # exactly on the next boundary

        assert next_reset_at(previous, now) == datetime(2024, 3, 15, tzinfo=UTC)

    def test_quarterly_period(self):
        previous = datetime(2024, 1, 1, tzinfo=UTC)
        now = datetime(2024, 1, 2, tzinfo=UTC)

        assert next_reset_at(previous, now, period_months=3) == datetime(2024, 4, 1, tzinfo=UTC)

    def test_rejects_non_positive_period(self):
        with pytest.raises(ValueError):
            next_reset_at(datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 2, 1, tzinfo=UTC), 0)


class TestHelpers:

    def test_first_reset_at_is_one_period_out(self):
        now = datetime(2024, 5, 20, 9, 15, tzinfo=UTC)
        assert first_reset_at(now) == datetime(2024, 6, 20, 9, 15, tzinfo=UTC)

    def test_is_due_at_boundary(self):
        boundary = datetime(2024, 2, 1, tzinfo=UTC)
        assert is_due(boundary, boundary) is True
        assert is_due(boundary, datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC)) is False

    def test_naive_datetimes_are_treated_as_utc(self):
        naive = datetime(2024, 2, 1)
        assert ensure_aware(naive) == datetime(2024, 2, 1, tzinfo=UTC)
        assert is_due(naive, datetime(2024, 2, 1, tzinfo=UTC)) is True
