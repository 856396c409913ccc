"""Credit ledger and balance response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ._strict_base import StrictModel


class CreditOperationResult(StrictModel):
    transaction_id: str
    new_balance: int


class BalanceSnapshot(StrictModel):
    user_id: str
    available_credits: int
    lifetime_credits: int
    last_updated: Optional[datetime] = None


class ReconciliationResult(StrictModel):
    user_id: str
    available_credits: int
    lifetime_credits: int
    was_updated: bool
    delta_available_credits: int
    delta_lifetime_credits: int
    inconsistency_count: int
    dry_run: bool = False


class CreditTransactionRead(StrictModel):
    id: str
    amount: int
    type: str
    effective_at: datetime
    booking_id: Optional[str] = None
    description: Optional[str] = None
