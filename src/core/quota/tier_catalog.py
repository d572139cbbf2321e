"""
TierCatalog - Read-through cache over the subscription tier table.

Tiers are read on every admission check but change rarely, so reads are
served from a process-local TTL cache.
"""

import logging
import time
from typing import Dict, List, Optional, Tuple

from src.constants import (
    DEFAULT_TIER_NAME,
    TIER_CACHE_TTL_SECONDS,
    TIER_MISS_CACHE_TTL_SECONDS,
    UNLIMITED_ALLOWANCE,
)

from .exceptions import InvalidAllowance, UnknownTier
from .schemas import Tier, TierName
from .store import UsageStore

logger = logging.getLogger(__name__)


DEFAULT_TIERS: List[Tier] = [
    Tier(
        name=TierName.freemium.value,
        display_name="Freemium",
        description="Free plan with a small monthly message allowance.",
        monthly_allowance=10,
        is_metered=True,
        features={
            "ai_providers": ["basic"],
            "max_projects": 1,
            "full_codebase_context": False,
            "git_integration": False,
            "team_features": False,
            "support_level": "community",
        },
        sort_order=1,
    ),
    Tier(
        name=TierName.pro.value,
        display_name="Pro",
        description="Unlimited chat for individual developers.",
        monthly_allowance=0,
        is_metered=False,
        features={
            "ai_providers": ["openai", "anthropic", "azure"],
            "max_projects": 10,
            "full_codebase_context": True,
            "git_integration": True,
            "team_features": False,
            "support_level": "email",
        },
        sort_order=2,
    ),
    Tier(
        name=TierName.team.value,
        display_name="Team",
        description="Unlimited chat with shared workspaces.",
        monthly_allowance=0,
        is_metered=False,
        features={
            "ai_providers": ["openai", "anthropic", "azure", "gemini"],
            "max_projects": 50,
            "full_codebase_context": True,
            "git_integration": True,
            "team_features": True,
            "support_level": "priority",
        },
        sort_order=3,
    ),
    Tier(
        name=TierName.enterprise.value,
        display_name="Enterprise",
        description="Unlimited chat with SSO and audit logs.",
        monthly_allowance=0,
        is_metered=False,
        features={
            "ai_providers": ["openai", "anthropic", "azure", "gemini"],
            "max_projects": None,
            "full_codebase_context": True,
            "git_integration": True,
            "team_features": True,
            "sso": True,
            "audit_logs": True,
            "support_level": "dedicated",
        },
        sort_order=4,
    ),
]


def normalize_tier(tier: Tier) -> Tier:
    """
    Validate a tier before it is written.

    The legacy allowance sentinel (-1) is rewritten to an unmetered tier;
    any other negative allowance is rejected.

    Raises:
        UnknownTier: name is outside the tier enumeration
        InvalidAllowance: negative allowance other than the sentinel
    """
    if tier.name not in TierName.values():
        raise UnknownTier(tier.name)

    if tier.monthly_allowance == UNLIMITED_ALLOWANCE:
        return tier.model_copy(update={"monthly_allowance": 0, "is_metered": False})

    if tier.monthly_allowance < 0:
        raise InvalidAllowance(tier.name, tier.monthly_allowance)

    return tier


class TierCatalog:
    """
    Tier lookups with a TTL cache.

    Updating a tier refreshes the cache entry immediately in this process;
    other processes see the change once their entry expires.

    Names that are not in the catalog are remembered for a short while so a
    corrupt ledger row does not hit the store on every admission check.
    """

    def __init__(
        self,
        store: UsageStore,
        cache_ttl_seconds: int = TIER_CACHE_TTL_SECONDS,
        default_tier_name: str = DEFAULT_TIER_NAME,
    ):
        self._store = store
        self._cache_ttl = cache_ttl_seconds
        self._default_tier_name = default_tier_name
        # tier name -> (tier, cached_at)
        self._cache: Dict[str, Tuple[Tier, float]] = {}
        # tier name -> missed_at
        self._misses: Dict[str, float] = {}

    @property
    def default_tier_name(self) -> str:
        return self._default_tier_name

    def _cached(self, name: str) -> Optional[Tier]:
        entry = self._cache.get(name)
        if entry is None:
            return None
        tier, cached_at = entry
        if time.monotonic() - cached_at >= self._cache_ttl:
            self._cache.pop(name, None)
            return None
        return tier

    def _recent_miss(self, name: str) -> bool:
        missed_at = self._misses.get(name)
        if missed_at is None:
            return False
        if time.monotonic() - missed_at >= min(self._cache_ttl, TIER_MISS_CACHE_TTL_SECONDS):
            self._misses.pop(name, None)
            return False
        return True

    async def get(self, name: Optional[str]) -> Tier:
        """
        Resolve a tier by name.

        Raises:
            UnknownTier: if the name is empty or not in the catalog
        """
        if not name:
            raise UnknownTier(name)

        tier = self._cached(name)
        if tier is not None:
            return tier

        if self._recent_miss(name):
            raise UnknownTier(name)

        tier = await self._store.load_tier(name)
        if tier is None:
            self._misses[name] = time.monotonic()
            raise UnknownTier(name)

        self._cache[name] = (tier, time.monotonic())
        logger.debug(f"Cached tier {name}")
        return tier

    async def exists(self, name: Optional[str]) -> bool:
        try:
            await self.get(name)
        except UnknownTier:
            return False
        return True

    async def upsert(self, tier: Tier) -> Tier:
        """
        Create or update a tier definition.

        Usage counters already recorded against the tier are left as they
        are; only later admission checks see the new allowance.
        """
        tier = normalize_tier(tier)
        saved = await self._store.save_tier(tier)
        self._cache[saved.name] = (saved, time.monotonic())
        self._misses.pop(saved.name, None)
        logger.info(
            f"Tier {saved.name} updated: "
            f"{'metered, allowance=' + str(saved.monthly_allowance) if saved.is_metered else 'unmetered'}"
        )
        return saved

    async def list(self, include_inactive: bool = False) -> List[Tier]:
        return await self._store.list_tiers(include_inactive=include_inactive)

    async def seed_defaults(self, overwrite: bool = False) -> List[Tier]:
        """
        Insert the default tiers.

        Existing tiers are kept unless ``overwrite`` is set, so re-running the
        seed never reverts an administrative change.
        """
        seeded = []
        for tier in DEFAULT_TIERS:
            existing = await self._store.load_tier(tier.name)
            if existing is not None and not overwrite:
                logger.debug(f"Tier {tier.name} already present, skipping")
                continue
            seeded.append(await self.upsert(tier))
        if seeded:
            logger.info(f"Seeded tiers: {', '.join(t.name for t in seeded)}")
        return seeded

    def invalidate(self, name: Optional[str] = None) -> None:
        """Drop one cached tier, or the whole cache."""
        if name is None:
            self._cache.clear()
            self._misses.clear()
        else:
            self._cache.pop(name, None)
            self._misses.pop(name, None)


__all__ = [
    "TierCatalog",
    "DEFAULT_TIERS",
    "normalize_tier",
]
