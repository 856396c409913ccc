"""Booking operation schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from ._strict_base import StrictModel


class Actor(BaseModel):
    """Caller identity used for ownership checks."""

    user_id: str
    business_id: Optional[str] = None


class BookClassResult(StrictModel):
    booking_id: str
    transaction_id: Optional[str] = None
    already_booked: bool = False


class CancelBookingResult(StrictModel):
    success: bool
    booking_id: str
    status: str
    refund_percentage: int
    refund_credits: int
    refund_amount_cents: int


class ClassCancellationResult(StrictModel):
    class_instance_id: str
    cancelled_bookings: int
    refunded_credits: int
    cancelled_reminders: int
