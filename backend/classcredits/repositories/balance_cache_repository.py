# backend/classcredits/repositories/balance_cache_repository.py
"""
Balance cache repository.

Reads and writes the per-user ``user_balance_cache`` row. Callers that check a
balance before debiting load the row with ``for_update=True`` so the check and
the write happen under the same row lock on PostgreSQL.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy import insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classcredits.core.exceptions import RepositoryException
from classcredits.models.credit import UserBalanceCache

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BalanceCacheRepository(BaseRepository[UserBalanceCache]):
    """Data access helpers for cached balances."""

    def __init__(self, db: Session):
        super().__init__(db, UserBalanceCache)

    def get_for_user(self, user_id: str, for_update: bool = False) -> Optional[UserBalanceCache]:
        """A locked read also refreshes an already loaded row with the stored values."""
        try:
            stmt = self._lockable(
                select(UserBalanceCache).where(UserBalanceCache.user_id == user_id), for_update
            )
            if for_update:
                stmt = stmt.execution_options(populate_existing=True)
            return cast(Optional[UserBalanceCache], self.db.execute(stmt).scalar_one_or_none())
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load balance cache for %s: %s", user_id, exc)
            raise RepositoryException(f"Failed to load balance cache: {exc}") from exc

    def get_or_create(
        self, user_id: str, now: datetime, for_update: bool = False
    ) -> UserBalanceCache:
        """
        Return the cache row, inserting a zero balance if none exists.

        The insert ignores conflicts so two first-time writers cannot fail each other.
        """
        existing = self.get_for_user(user_id, for_update=for_update)
        if existing is not None:
            return existing

        values = {
            "user_id": user_id,
            "available_credits": 0,
            "lifetime_credits": 0,
            "last_updated": now,
        }
        try:
            if self.dialect_name == "postgresql":
                stmt = (
                    pg_insert(UserBalanceCache)
                    .values(**values)
                    .on_conflict_do_nothing(index_elements=["user_id"])
                )
                self.db.execute(stmt)
            else:
                stmt = insert(UserBalanceCache).values(**values)
                if self.dialect_name == "sqlite":
                    stmt = stmt.prefix_with("OR IGNORE")
                self.db.execute(stmt)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to create balance cache for %s: %s", user_id, exc)
            raise RepositoryException(f"Failed to create balance cache: {exc}") from exc

        created = self.get_for_user(user_id, for_update=for_update)
        if created is None:
            raise RepositoryException(f"Balance cache row for {user_id} missing after insert")
        return created

    def apply_delta(
        self,
        cache: UserBalanceCache,
        *,
        available_delta: int,
        lifetime_delta: int = 0,
        now: datetime,
    ) -> UserBalanceCache:
        """Shift cached values by the amounts of a just-appended ledger entry."""
        cache.available_credits = int(cache.available_credits or 0) + available_delta
        cache.lifetime_credits = int(cache.lifetime_credits or 0) + lifetime_delta
        cache.last_updated = now
        self.db.flush()
        return cache

    def overwrite(
        self, cache: UserBalanceCache, *, available: int, lifetime: int, now: datetime
    ) -> UserBalanceCache:
        """Replace cached values with freshly reconciled ones."""
        cache.available_credits = available
        cache.lifetime_credits = lifetime
        cache.last_updated = now
        self.db.flush()
        return cache

    def all_user_ids(self) -> List[str]:
        try:
            rows = self.db.execute(select(UserBalanceCache.user_id).order_by(UserBalanceCache.user_id))
            return [row[0] for row in rows]
        except SQLAlchemyError as exc:
            self.logger.error("Failed to list cached users: %s", exc)
            raise RepositoryException("Failed to list cached users") from exc
