"""
Pydantic schemas for the credits ledger and booking engine.
"""

from .booking import Actor, BookClassResult, CancelBookingResult, ClassCancellationResult
from .credit import (
    BalanceSnapshot,
    CreditOperationResult,
    CreditTransactionRead,
    ReconciliationResult,
)
from .discount import (
    AlwaysCondition,
    AppliedDiscount,
    DiscountRule,
    FixedAmountDiscount,
    HoursBeforeMaxCondition,
    HoursBeforeMinCondition,
    PercentageDiscount,
)
from .earnings import MonthlyEarnings
from .notification import BookingEntity, RelatedEntity, related_entity_from_columns

__all__ = [
    "Actor",
    "AlwaysCondition",
    "AppliedDiscount",
    "BalanceSnapshot",
    "BookClassResult",
    "BookingEntity",
    "CancelBookingResult",
    "ClassCancellationResult",
    "CreditOperationResult",
    "CreditTransactionRead",
    "DiscountRule",
    "FixedAmountDiscount",
    "HoursBeforeMaxCondition",
    "HoursBeforeMinCondition",
    "MonthlyEarnings",
    "PercentageDiscount",
    "ReconciliationResult",
    "RelatedEntity",
    "related_entity_from_columns",
]
