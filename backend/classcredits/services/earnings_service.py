"""Business earnings read model."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Optional

from sqlalchemy.orm import Session

from classcredits.core.clock import Clock
from classcredits.core.config import settings
from classcredits.models.booking import Booking, BookingStatus
from classcredits.repositories.factory import RepositoryFactory
from classcredits.schemas.earnings import MonthlyEarnings

from .base import BaseService

logger = logging.getLogger(__name__)

_FULL_REVENUE = frozenset({BookingStatus.COMPLETED.value, BookingStatus.NO_SHOW.value})
_REFUNDABLE = frozenset(
    {
        BookingStatus.CANCELLED_BY_CONSUMER.value,
        BookingStatus.CANCELLED_BY_BUSINESS.value,
        BookingStatus.REJECTED_BY_BUSINESS.value,
    }
)


def booking_revenue_cents(booking: Booking) -> int:
    """Revenue a booking contributes: kept bookings in full, cancellations net of refunds."""
    if booking.status in _FULL_REVENUE:
        return int(booking.final_price or 0)
    if booking.status in _REFUNDABLE:
        return max(0, int(booking.final_price or 0) - int(booking.refund_amount or 0))
    return 0


class EarningsService(BaseService):
    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        platform_fee_rate: Optional[float] = None,
    ):
        super().__init__(db, clock)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.platform_fee_rate = (
            settings.platform_fee_rate if platform_fee_rate is None else platform_fee_rate
        )

    @BaseService.measure_operation("monthly_earnings")
    def monthly_earnings(self, business_id: str, year: int, month: int) -> MonthlyEarnings:
        """Aggregate a business's revenue for bookings made in the given UTC month."""
        if not 1 <= month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {month}")
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        end = (
            datetime(year + 1, 1, 1, tzinfo=timezone.utc)
            if month == 12
            else datetime(year, month + 1, 1, tzinfo=timezone.utc)
        )

        bookings = self.booking_repository.find_for_business_booked_between(business_id, start, end)
        gross = 0
        counted = 0
        for booking in bookings:
            revenue = booking_revenue_cents(booking)
            if revenue > 0:
                counted += 1
                gross += revenue

        fee = int(
            (Decimal(gross) * Decimal(str(self.platform_fee_rate))).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
        )
        return MonthlyEarnings(
            business_id=business_id,
            month=f"{year:04d}-{month:02d}",
            gross_cents=gross,
            platform_fee_cents=fee,
            net_cents=gross - fee,
            total_bookings=len(bookings),
            counted_bookings=counted,
        )
