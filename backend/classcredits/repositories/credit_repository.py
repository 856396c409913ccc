# backend/classcredits/repositories/credit_repository.py
"""
Credit Repository

The ledger store: append-only inserts and deterministic folds over a user's
credit transactions. Nothing here updates or deletes an existing entry.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classcredits.core.enums import CreditTransactionType
from classcredits.core.exceptions import InvalidAmountException, RepositoryException
from classcredits.models.credit import CreditTransaction

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

_INCOME_TYPES = (CreditTransactionType.GIFT.value, CreditTransactionType.PURCHASE.value)


class CreditRepository(BaseRepository[CreditTransaction]):
    """Repository for ledger appends and balance folds."""

    def __init__(self, db: Session):
        super().__init__(db, CreditTransaction)
        self.logger = logging.getLogger(__name__)

    def append(
        self,
        *,
        user_id: str,
        amount: int,
        type: CreditTransactionType | str,
        effective_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        business_id: Optional[str] = None,
        venue_id: Optional[str] = None,
        class_template_id: Optional[str] = None,
        class_instance_id: Optional[str] = None,
        booking_id: Optional[str] = None,
        external_ref: Optional[str] = None,
        description: Optional[str] = None,
    ) -> CreditTransaction:
        """
        Append a signed ledger entry.

        No balance check is done here; callers validate sufficiency before debits.

        Raises:
            InvalidAmountException: if ``amount`` is zero
        """
        if amount == 0:
            raise InvalidAmountException(amount, "Credit transaction amount must be non-zero")

        now = created_at or datetime.now(timezone.utc)
        entry = self.create(
            user_id=user_id,
            amount=amount,
            type=CreditTransactionType(type).value,
            effective_at=effective_at or now,
            created_at=now,
            business_id=business_id,
            venue_id=venue_id,
            class_template_id=class_template_id,
            class_instance_id=class_instance_id,
            booking_id=booking_id,
            external_ref=external_ref,
            description=description,
        )
        self.logger.debug(
            "Appended ledger entry %s user=%s type=%s amount=%+d",
            entry.id,
            user_id,
            entry.type,
            amount,
        )
        return entry

    def sum_for_user(self, user_id: str, as_of: Optional[datetime] = None) -> int:
        """Sum of amounts with ``effective_at <= as_of`` (default now)."""
        cutoff = as_of or datetime.now(timezone.utc)
        stmt = select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
            and_(CreditTransaction.user_id == user_id, CreditTransaction.effective_at <= cutoff)
        )
        return int(self._execute_scalar(stmt) or 0)

    def lifetime_for_user(self, user_id: str, as_of: Optional[datetime] = None) -> int:
        """Cumulative gifted and purchased credits."""
        cutoff = as_of or datetime.now(timezone.utc)
        stmt = select(func.coalesce(func.sum(CreditTransaction.amount), 0)).where(
            and_(
                CreditTransaction.user_id == user_id,
                CreditTransaction.effective_at <= cutoff,
                CreditTransaction.amount > 0,
                CreditTransaction.type.in_(_INCOME_TYPES),
            )
        )
        return int(self._execute_scalar(stmt) or 0)

    def list_for_user(self, user_id: str, limit: int = 50) -> List[CreditTransaction]:
        """Most recent entries first."""
        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(CreditTransaction.effective_at.desc(), CreditTransaction.id.desc())
            .limit(limit)
        )
        return self._execute_list(stmt)

    def list_for_booking(self, booking_id: str) -> List[CreditTransaction]:
        stmt = (
            select(CreditTransaction)
            .where(CreditTransaction.booking_id == booking_id)
            .order_by(CreditTransaction.effective_at.asc(), CreditTransaction.id.asc())
        )
        return self._execute_list(stmt)

    def distinct_user_ids(self) -> List[str]:
        """Every user that has at least one ledger entry."""
        try:
            rows = self.db.execute(
                select(CreditTransaction.user_id).distinct().order_by(CreditTransaction.user_id)
            )
            return [row[0] for row in rows]
        except SQLAlchemyError as exc:
            self.logger.error("Failed to list ledger users: %s", str(exc))
            raise RepositoryException("Failed to list ledger users") from exc
