# backend/classcredits/models/booking.py
"""
Booking model.

Bookings are self-contained records: price, applied discount and display data
for the class, venue and customer are snapshotted at booking time so the
record keeps its historical meaning even when the class instance, its
template, or the user profile changes later. Refund fields are added by the
state machine; pricing fields are never rewritten.
"""

from enum import Enum
import logging
from typing import Any, FrozenSet

from sqlalchemy import Boolean, CheckConstraint, Column, Index, Integer, String, Text, text
import ulid

from classcredits.database import Base

from .types import JSONType, UTCDateTime

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    AWAITING_APPROVAL = "awaiting_approval"  # Business must confirm
    PENDING = "pending"  # Confirmed, class not attended yet
    COMPLETED = "completed"
    CANCELLED_BY_CONSUMER = "cancelled_by_consumer"
    CANCELLED_BY_BUSINESS = "cancelled_by_business"
    REJECTED_BY_BUSINESS = "rejected_by_business"
    NO_SHOW = "no_show"


ACTIVE_BOOKING_STATUSES: FrozenSet[str] = frozenset(
    {BookingStatus.PENDING.value, BookingStatus.AWAITING_APPROVAL.value}
)
TERMINAL_BOOKING_STATUSES: FrozenSet[str] = frozenset(
    {
        BookingStatus.COMPLETED.value,
        BookingStatus.CANCELLED_BY_CONSUMER.value,
        BookingStatus.CANCELLED_BY_BUSINESS.value,
        BookingStatus.REJECTED_BY_BUSINESS.value,
        BookingStatus.NO_SHOW.value,
    }
)

_ACTIVE_WHERE = "status IN ('pending', 'awaiting_approval') AND deleted = {false}"


class Booking(Base):
    """A consumer's reservation of a class instance, paid in credits."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), nullable=False, index=True)
    class_instance_id = Column(String(26), nullable=False, index=True)
    business_id = Column(String(26), nullable=False, index=True)
    venue_id = Column(String(26), nullable=True)
    status = Column(String(30), nullable=False, default=BookingStatus.PENDING.value)
    deleted = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)

    # Frozen pricing (cents / credits)
    original_price = Column(Integer, nullable=False)
    final_price = Column(Integer, nullable=False)
    credits_used = Column(Integer, nullable=False)
    applied_discount = Column(JSONType, nullable=True)
    credit_transaction_id = Column(String(64), nullable=True)

    # Display snapshots
    class_start_time = Column(UTCDateTime(), nullable=False)
    class_instance_snapshot = Column(JSONType, nullable=False, default=dict)
    venue_snapshot = Column(JSONType, nullable=True)
    user_snapshot = Column(JSONType, nullable=True)

    # Refunds
    refund_amount = Column(Integer, nullable=True)
    refund_credits = Column(Integer, nullable=True)
    refund_transaction_id = Column(String(26), nullable=True)

    # Timestamps
    booked_at = Column(UTCDateTime(), nullable=False)
    updated_at = Column(UTCDateTime(), nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)
    approved_at = Column(UTCDateTime(), nullable=True)
    rejected_at = Column(UTCDateTime(), nullable=True)
    completed_at = Column(UTCDateTime(), nullable=True)
    no_show_at = Column(UTCDateTime(), nullable=True)

    # Actors and reasons
    cancelled_by = Column(String(20), nullable=True)
    cancelled_by_user_id = Column(String(26), nullable=True)
    cancel_reason = Column(Text, nullable=True)
    approved_by = Column(String(26), nullable=True)
    rejected_by = Column(String(26), nullable=True)
    reject_reason = Column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('awaiting_approval', 'pending', 'completed', 'cancelled_by_consumer', "
            "'cancelled_by_business', 'rejected_by_business', 'no_show')",
            name="ck_bookings_status",
        ),
        CheckConstraint("original_price >= 0", name="ck_bookings_original_price"),
        CheckConstraint("final_price >= 0", name="ck_bookings_final_price"),
        CheckConstraint("credits_used >= 0", name="ck_bookings_credits_used"),
        Index("ix_bookings_status_start", "status", "deleted", "class_start_time"),
        Index("ix_bookings_status_booked_at", "status", "deleted", "booked_at"),
        Index("ix_bookings_user_instance", "user_id", "class_instance_id"),
        Index(
            "uq_bookings_active_user_instance",
            "user_id",
            "class_instance_id",
            unique=True,
            postgresql_where=text(_ACTIVE_WHERE.format(false="false")),
            sqlite_where=text(_ACTIVE_WHERE.format(false="0")),
        ),
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.PENDING.value

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES and not self.deleted

    @property
    def class_name(self) -> str:
        return (self.class_instance_snapshot or {}).get("name") or ""

    @property
    def cancellation_window_hours(self) -> int:
        return int((self.class_instance_snapshot or {}).get("cancellation_window_hours") or 0)

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: user={self.user_id}, instance={self.class_instance_id}, "
            f"status={self.status}, final_price={self.final_price}>"
        )
