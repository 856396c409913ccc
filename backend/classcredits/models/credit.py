# backend/classcredits/models/credit.py
"""
Credit ledger models.

``CreditTransaction`` is the append-only source of truth for every user's
balance. ``UserBalanceCache`` is a per-user materialized view of the ledger
that keeps balance reads O(1); it is only ever written right after a ledger
append or by the reconciler.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import CheckConstraint, Index, Integer, String, Text, event, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from classcredits.core.enums import CreditTransactionType
from classcredits.database import Base

from .types import UTCDateTime


class ImmutableLedgerError(RuntimeError):
    """Raised when code attempts to rewrite or remove a ledger entry."""


class CreditTransaction(Base):
    """Signed, immutable credit movement for a single user."""

    __tablename__ = "credit_transactions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(String(26), nullable=False)
    # Positive = credit, negative = debit
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    effective_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False
    )

    # Optional linkage
    business_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    venue_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    class_template_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    class_instance_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    booking_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True)
    external_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_credit_transactions_amount_nonzero"),
        CheckConstraint(
            "type IN ('gift', 'purchase', 'spend', 'refund')",
            name="ck_credit_transactions_type",
        ),
        Index("ix_credit_transactions_user_effective", "user_id", "effective_at"),
        Index("ix_credit_transactions_booking", "booking_id"),
    )

    @property
    def is_income(self) -> bool:
        """Whether this entry counts toward lifetime credits."""
        return self.amount > 0 and self.type in (
            CreditTransactionType.GIFT.value,
            CreditTransactionType.PURCHASE.value,
        )

    def __repr__(self) -> str:
        return f"<CreditTransaction {self.id}: user={self.user_id} {self.type} {self.amount:+d}>"


@event.listens_for(CreditTransaction, "before_update")
def _reject_ledger_update(mapper: Any, connection: Any, target: CreditTransaction) -> None:
    raise ImmutableLedgerError(f"Credit transaction {target.id} is immutable")


@event.listens_for(CreditTransaction, "before_delete")
def _reject_ledger_delete(mapper: Any, connection: Any, target: CreditTransaction) -> None:
    raise ImmutableLedgerError(f"Credit transaction {target.id} cannot be deleted")


class UserBalanceCache(Base):
    """Denormalized per-user balance derived from the ledger."""

    __tablename__ = "user_balance_cache"

    user_id: Mapped[str] = mapped_column(String(26), primary_key=True)
    available_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Cumulative gift + purchase credits
    lifetime_credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<UserBalanceCache {self.user_id}: available={self.available_credits} "
            f"lifetime={self.lifetime_credits}>"
        )
