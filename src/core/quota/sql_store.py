"""
SQLUsageStore - PostgreSQL implementation of the usage store.

Every ledger mutation is one conditional UPDATE; ``rowcount == 1`` means the
predicate held and the change was applied. No row is read and written back
from Python, so concurrent workers and API replicas need no shared lock.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.connection import db
from src.db.models import SubscriptionTierModel, UsageLedgerModel
from src.db.utils import model_to_dict, with_db_retry

from .exceptions import StorageUnavailable
from .periods import ensure_aware, utcnow
from .schemas import Tier, UsageRow
from .store import UsageStore

logger = logging.getLogger(__name__)

# Rows fetched per round trip while iterating the ledger
LEDGER_PAGE_SIZE = 500

_LEDGER_FIELDS = ("tier_name", "messages_used", "period_reset_at")


def _tier_from_model(model: SubscriptionTierModel) -> Tier:
    data = model_to_dict(model)
    return Tier(
        name=data["tier_name"],
        display_name=data["display_name"],
        description=data["description"],
        monthly_allowance=data["monthly_allowance"],
        is_metered=data["is_metered"],
        features=data["features"] or {},
        sort_order=data["sort_order"],
        is_active=data["is_active"],
    )


def _row_from_model(model: UsageLedgerModel) -> UsageRow:
    data = model_to_dict(model)
    if data.get("period_reset_at") is not None:
        data["period_reset_at"] = ensure_aware(data["period_reset_at"])
    return UsageRow(**data)


class SQLUsageStore(UsageStore):
    """Usage store backed by the shared DatabaseManager."""

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        async with db.session() as session:
            if session is None:
                raise StorageUnavailable(operation)
            yield session

    # =========================================================================
    # Tier catalog
    # =========================================================================

    @with_db_retry
    async def load_tier(self, name: str) -> Optional[Tier]:
        async with self._session("load_tier") as session:
            result = await session.execute(
                select(SubscriptionTierModel).where(SubscriptionTierModel.tier_name == name)
            )
            model = result.scalar_one_or_none()
            return _tier_from_model(model) if model else None

    @with_db_retry
    async def save_tier(self, tier: Tier) -> Tier:
        now = utcnow()
        values = {
            "tier_name": tier.name,
            "display_name": tier.display_name,
            "description": tier.description,
            "monthly_allowance": tier.monthly_allowance,
            "is_metered": tier.is_metered,
            "features": tier.features,
            "sort_order": tier.sort_order,
            "is_active": tier.is_active,
            "updated_at": now,
        }
        stmt = pg_insert(SubscriptionTierModel).values(created_at=now, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[SubscriptionTierModel.tier_name],
            set_=values,
        )
        async with self._session("save_tier") as session:
            await session.execute(stmt)

        logger.info(
            f"Saved tier {tier.name}: metered={tier.is_metered}, "
            f"allowance={tier.monthly_allowance}"
        )
        return tier

    @with_db_retry
    async def list_tiers(self, include_inactive: bool = False) -> List[Tier]:
        query = select(SubscriptionTierModel).order_by(
            SubscriptionTierModel.sort_order, SubscriptionTierModel.tier_name
        )
        if not include_inactive:
            query = query.where(SubscriptionTierModel.is_active.is_(True))

        async with self._session("list_tiers") as session:
            result = await session.execute(query)
            return [_tier_from_model(m) for m in result.scalars().all()]

    # =========================================================================
    # Usage ledger
    # =========================================================================

    @with_db_retry
    async def load_usage(self, user_id: str) -> Optional[UsageRow]:
        async with self._session("load_usage") as session:
            result = await session.execute(
                select(UsageLedgerModel).where(UsageLedgerModel.user_id == user_id)
            )
            model = result.scalar_one_or_none()
            return _row_from_model(model) if model else None

    @with_db_retry
    async def create_usage(
        self,
        user_id: str,
        tier_name: str,
        period_reset_at: datetime,
    ) -> UsageRow:
        now = utcnow()
        stmt = (
            pg_insert(UsageLedgerModel)
            .values(
                user_id=user_id,
                tier_name=tier_name,
                messages_used=0,
                period_reset_at=ensure_aware(period_reset_at),
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=[UsageLedgerModel.user_id])
        )

        async with self._session("create_usage") as session:
            result = await session.execute(stmt)
            if result.rowcount == 1:
                logger.info(f"Created usage ledger row for user {user_id} on tier {tier_name}")

            existing = await session.execute(
                select(UsageLedgerModel).where(UsageLedgerModel.user_id == user_id)
            )
            return _row_from_model(existing.scalar_one())

    @with_db_retry
    async def conditional_increment(
        self,
        user_id: str,
        allowance: int,
        now: datetime,
    ) -> bool:
        stmt = (
            update(UsageLedgerModel)
            .where(
                UsageLedgerModel.user_id == user_id,
                UsageLedgerModel.messages_used < allowance,
                UsageLedgerModel.period_reset_at > now,
            )
            .values(
                messages_used=UsageLedgerModel.messages_used + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session("conditional_increment") as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    @with_db_retry
    async def record_unmetered(self, user_id: str, now: datetime) -> bool:
        stmt = (
            update(UsageLedgerModel)
            .where(
                UsageLedgerModel.user_id == user_id,
                UsageLedgerModel.period_reset_at > now,
            )
            .values(
                messages_used=UsageLedgerModel.messages_used + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session("record_unmetered") as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    @with_db_retry
    async def compare_and_reset(
        self,
        user_id: str,
        expected_reset_at: datetime,
        new_reset_at: datetime,
    ) -> bool:
        stmt = (
            update(UsageLedgerModel)
            .where(
                UsageLedgerModel.user_id == user_id,
                UsageLedgerModel.period_reset_at == ensure_aware(expected_reset_at),
            )
            .values(
                messages_used=0,
                period_reset_at=ensure_aware(new_reset_at),
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        async with self._session("compare_and_reset") as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    @with_db_retry
    async def _fetch_usage_page(self, after: Optional[str], limit: int) -> List[UsageRow]:
        query = select(UsageLedgerModel).order_by(UsageLedgerModel.user_id).limit(limit)
        if after is not None:
            query = query.where(UsageLedgerModel.user_id > after)

        async with self._session("list_usage_rows") as session:
            result = await session.execute(query)
            return [_row_from_model(m) for m in result.scalars().all()]

    async def list_usage_rows(self) -> AsyncIterator[UsageRow]:
        # Keyset pagination keeps each page in its own short transaction
        after: Optional[str] = None
        while True:
            page = await self._fetch_usage_page(after, LEDGER_PAGE_SIZE)
            if not page:
                return
            for row in page:
                yield row
            after = page[-1].user_id

    @with_db_retry
    async def update_usage(
        self,
        user_id: str,
        expected: Optional[Dict[str, Any]] = None,
        **fields,
    ) -> bool:
        unknown = (set(fields) | set(expected or {})) - set(_LEDGER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown ledger field(s): {', '.join(sorted(unknown))}")

        stmt = update(UsageLedgerModel).where(UsageLedgerModel.user_id == user_id)
        for key, value in (expected or {}).items():
            # IS NOT DISTINCT FROM so an observed NULL still matches
            stmt = stmt.where(getattr(UsageLedgerModel, key).is_not_distinct_from(value))
        stmt = stmt.values(updated_at=utcnow(), **fields).execution_options(synchronize_session=False)

        async with self._session("update_usage") as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def close(self) -> None:
        await db.close_all()


__all__ = [
    "SQLUsageStore",
    "LEDGER_PAGE_SIZE",
]
