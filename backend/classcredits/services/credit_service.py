"""Credit ledger service: signed appends with an in-step balance cache update."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from classcredits.core.clock import Clock
from classcredits.core.enums import CreditTransactionType
from classcredits.core.exceptions import InsufficientCreditsException, InvalidAmountException
from classcredits.models.credit import CreditTransaction
from classcredits.monitoring.prometheus_metrics import prometheus_metrics
from classcredits.repositories.factory import RepositoryFactory
from classcredits.schemas.credit import CreditOperationResult

from .base import BaseService

logger = logging.getLogger(__name__)

_INCOME_TYPES = (CreditTransactionType.GIFT, CreditTransactionType.PURCHASE)


class CreditService(BaseService):
    """Gifts, purchases, spends and refunds against the credits ledger."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.credit_repository = RepositoryFactory.create_credit_repository(db)
        self.balance_cache_repository = RepositoryFactory.create_balance_cache_repository(db)

    def _apply(
        self, user_id: str, amount: int, tx_type: CreditTransactionType, **linkage: Any
    ) -> CreditOperationResult:
        """Append one signed entry and move the cached balance by the same amount."""
        now = self.now()
        cache = self.balance_cache_repository.get_or_create(user_id, now, for_update=True)
        available = int(cache.available_credits or 0)
        if amount < 0 and available + amount < 0:
            raise InsufficientCreditsException(required=-amount, available=available)

        entry = self.credit_repository.append(
            user_id=user_id,
            amount=amount,
            type=tx_type,
            effective_at=now,
            created_at=now,
            **linkage,
        )
        lifetime_delta = amount if tx_type in _INCOME_TYPES and amount > 0 else 0
        self.balance_cache_repository.apply_delta(
            cache, available_delta=amount, lifetime_delta=lifetime_delta, now=now
        )
        prometheus_metrics.record_ledger_entry(tx_type.value)
        self.logger.info(
            "Ledger %s for user %s: %+d (balance %d)",
            tx_type.value,
            user_id,
            amount,
            cache.available_credits,
        )
        return CreditOperationResult(transaction_id=entry.id, new_balance=cache.available_credits)

    def _run(
        self,
        user_id: str,
        amount: int,
        tx_type: CreditTransactionType,
        use_transaction: bool,
        linkage: dict[str, Any],
    ) -> CreditOperationResult:
        if amount <= 0:
            raise InvalidAmountException(amount, f"{tx_type.value} amount must be positive")
        signed = -amount if tx_type == CreditTransactionType.SPEND else amount
        if use_transaction:
            with self.transaction():
                return self._apply(user_id, signed, tx_type, **linkage)
        return self._apply(user_id, signed, tx_type, **linkage)

    @BaseService.measure_operation("gift_credits")
    def gift_credits(
        self, user_id: str, amount: int, use_transaction: bool = True, **linkage: Any
    ) -> CreditOperationResult:
        return self._run(user_id, amount, CreditTransactionType.GIFT, use_transaction, linkage)

    @BaseService.measure_operation("purchase_credits")
    def purchase_credits(
        self, user_id: str, amount: int, use_transaction: bool = True, **linkage: Any
    ) -> CreditOperationResult:
        return self._run(user_id, amount, CreditTransactionType.PURCHASE, use_transaction, linkage)

    @BaseService.measure_operation("spend_credits")
    def spend_credits(
        self, user_id: str, amount: int, use_transaction: bool = True, **linkage: Any
    ) -> CreditOperationResult:
        """
        Debit ``amount`` credits.

        Raises:
            InvalidAmountException: amount is not positive
            InsufficientCreditsException: cached balance is below ``amount``;
                nothing is written
        """
        return self._run(user_id, amount, CreditTransactionType.SPEND, use_transaction, linkage)

    @BaseService.measure_operation("refund_credits")
    def refund_credits(
        self, user_id: str, amount: int, use_transaction: bool = True, **linkage: Any
    ) -> CreditOperationResult:
        return self._run(user_id, amount, CreditTransactionType.REFUND, use_transaction, linkage)

    def get_transaction_history(self, user_id: str, limit: int = 50) -> List[CreditTransaction]:
        """Ledger entries for a user, newest first."""
        return self.credit_repository.list_for_user(user_id, limit=limit)
