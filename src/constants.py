"""Application-wide constants and configuration defaults.

This module centralizes magic values, default configurations, and constants
that are used across the codebase to improve maintainability.
"""

# =============================================================================
# Tier Catalog
# =============================================================================
DEFAULT_TIER_NAME = "freemium"
TIER_CACHE_TTL_SECONDS = 3600  # 1 hour
TIER_MISS_CACHE_TTL_SECONDS = 30  # Unknown tier names; bounded by TIER_CACHE_TTL_SECONDS

# Legacy allowance value meaning "no monthly limit"
UNLIMITED_ALLOWANCE = -1

# =============================================================================
# Billing Periods
# =============================================================================
DEFAULT_PERIOD_MONTHS = 1

# =============================================================================
# Quota Guard
# =============================================================================
# Compare-and-swap attempts before a contended check gives up
MAX_CAS_ATTEMPTS = 3

STORAGE_POLICY_DENY = "deny"
STORAGE_POLICY_RAISE = "raise"

FAULT_UNKNOWN_TIER = "unknown_tier"
FAULT_STORAGE_UNAVAILABLE = "storage_unavailable"

# =============================================================================
# Period Reset Scheduler
# =============================================================================
DEFAULT_RESET_INTERVAL_SECONDS = 3600

# =============================================================================
# Consistency Auditor
# =============================================================================
INVARIANT_UNKNOWN_TIER = "unknown_tier"
INVARIANT_MISSING_RESET_AT = "missing_reset_at"
INVARIANT_NEGATIVE_USAGE = "negative_usage"

AUDITED_INVARIANTS = (
    INVARIANT_UNKNOWN_TIER,
    INVARIANT_MISSING_RESET_AT,
    INVARIANT_NEGATIVE_USAGE,
)

# =============================================================================
# Database Pool Configuration
# =============================================================================
DEFAULT_DB_POOL_SIZE = 5
DEFAULT_DB_MAX_OVERFLOW = 10
DEFAULT_DB_POOL_TIMEOUT = 30
DEFAULT_DB_POOL_RECYCLE = 1800  # 30 min
