"""Configuration for the message quota engine.

Values are read from the environment (``.env`` is loaded by the entry
points) with defaults from ``src.constants``.
"""

from pydantic import BaseModel, Field, field_validator

from src.constants import (
    DEFAULT_TIER_NAME,
    DEFAULT_PERIOD_MONTHS,
    DEFAULT_RESET_INTERVAL_SECONDS,
    STORAGE_POLICY_DENY,
    STORAGE_POLICY_RAISE,
    TIER_CACHE_TTL_SECONDS,
)
from src.utils.env_utils import parse_bool_env, parse_int_env, parse_str_env


class QuotaConfig(BaseModel):
    """Settings shared by the guard, scheduler and auditor."""

    use_database: bool = Field(
        default_factory=lambda: parse_bool_env("DATABASE_ENABLED", True),
        description="Persist the ledger in PostgreSQL; in-memory store when false",
    )

    default_tier: str = Field(
        default_factory=lambda: parse_str_env("QUOTA_DEFAULT_TIER", DEFAULT_TIER_NAME),
        description="Tier assigned to new and repaired ledger rows",
    )

    period_months: int = Field(
        default_factory=lambda: parse_int_env("QUOTA_PERIOD_MONTHS", DEFAULT_PERIOD_MONTHS),
        description="Length of a billing period in calendar months",
    )

    storage_failure_policy: str = Field(
        default_factory=lambda: parse_str_env("QUOTA_STORAGE_FAILURE_POLICY", STORAGE_POLICY_DENY),
        description="'deny' returns a denied decision, 'raise' propagates StorageUnavailable",
    )

    tier_cache_ttl_seconds: int = Field(
        default_factory=lambda: parse_int_env("TIER_CACHE_TTL_SECONDS", TIER_CACHE_TTL_SECONDS),
    )

    reset_interval_seconds: int = Field(
        default_factory=lambda: parse_int_env("PERIOD_RESET_INTERVAL_SECONDS", DEFAULT_RESET_INTERVAL_SECONDS),
    )

    reset_scheduler_enabled: bool = Field(
        default_factory=lambda: parse_bool_env("PERIOD_RESET_ENABLED", True),
    )

    @field_validator('period_months')
    @classmethod
    def validate_period_months(cls, v: int) -> int:
        if not 1 <= v <= 12:
            raise ValueError("Period length must be between 1 and 12 months")
        return v

    @field_validator('storage_failure_policy')
    @classmethod
    def validate_storage_policy(cls, v: str) -> str:
        v = v.lower()
        if v not in (STORAGE_POLICY_DENY, STORAGE_POLICY_RAISE):
            raise ValueError(
                f"Storage failure policy must be '{STORAGE_POLICY_DENY}' or '{STORAGE_POLICY_RAISE}'"
            )
        return v

    @field_validator('reset_interval_seconds')
    @classmethod
    def validate_reset_interval(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Reset interval must be at least one second")
        return v


__all__ = ["QuotaConfig"]
