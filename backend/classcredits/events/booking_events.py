"""
Booking domain events.

Each event carries enough display data (class, venue, start time, customer,
amount) for a notification to be rendered without reading the database again.
"""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional

from classcredits.models.booking import Booking


@dataclass
class BookingEvent:
    """Fields shared by every booking notification."""

    event_type: ClassVar[str] = "booking.event"

    booking_id: str
    user_id: str
    business_id: str
    class_instance_id: str
    class_name: str
    venue_name: Optional[str]
    start_time: datetime
    customer_name: Optional[str]
    customer_email: Optional[str]
    credits: int
    amount_cents: int

    @classmethod
    def from_booking(cls, booking: Booking, **extra: Any) -> "BookingEvent":
        user = booking.user_snapshot or {}
        venue = booking.venue_snapshot or {}
        return cls(
            booking_id=booking.id,
            user_id=booking.user_id,
            business_id=booking.business_id,
            class_instance_id=booking.class_instance_id,
            class_name=booking.class_name,
            venue_name=venue.get("name"),
            start_time=booking.class_start_time,
            customer_name=user.get("name"),
            customer_email=user.get("email"),
            credits=int(booking.credits_used or 0),
            amount_cents=int(booking.final_price or 0),
            **extra,
        )

    @property
    def aggregate_id(self) -> str:
        return self.booking_id

    @property
    def idempotency_key(self) -> str:
        return f"{self.event_type}:{self.booking_id}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCreated(BookingEvent):
    """Fired after a booking is committed."""

    event_type: ClassVar[str] = "booking.created"

    status: str = ""


@dataclass
class BookingCancelled(BookingEvent):
    """Fired after a booking is cancelled by either side."""

    event_type: ClassVar[str] = "booking.cancelled"

    cancelled_by: str = ""
    reason: Optional[str] = None
    refund_percentage: int = 0
    refund_credits: int = 0
    refund_amount_cents: int = 0


@dataclass
class BookingApproved(BookingEvent):
    """Fired when a business confirms a booking awaiting approval."""

    event_type: ClassVar[str] = "booking.approved"

    approved_by: Optional[str] = None


@dataclass
class BookingRejected(BookingEvent):
    """Fired when a business declines a booking awaiting approval."""

    event_type: ClassVar[str] = "booking.rejected"

    reason: Optional[str] = None
    refund_credits: int = 0
    refund_amount_cents: int = 0


@dataclass
class ClassCancelled(BookingEvent):
    """Fired once per affected customer when a business cancels a whole class."""

    event_type: ClassVar[str] = "class.cancelled"

    reason: Optional[str] = None
    refund_credits: int = 0

    @property
    def idempotency_key(self) -> str:
        return f"{self.event_type}:{self.class_instance_id}:{self.booking_id}"


@dataclass
class BookingReminder(BookingEvent):
    """Fired when a scheduled class reminder comes due."""

    event_type: ClassVar[str] = "booking.reminder"

    notification_id: str = ""
    reminder_type: str = ""

    @property
    def idempotency_key(self) -> str:
        return f"{self.event_type}:{self.notification_id}"
