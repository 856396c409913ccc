"""Domain events delivered through the notification outbox."""

from classcredits.events.booking_events import (
    BookingApproved,
    BookingCancelled,
    BookingCreated,
    BookingEvent,
    BookingRejected,
    BookingReminder,
    ClassCancelled,
)
from classcredits.events.publisher import EventPublisher

__all__ = [
    "BookingApproved",
    "BookingCancelled",
    "BookingCreated",
    "BookingEvent",
    "BookingRejected",
    "BookingReminder",
    "ClassCancelled",
    "EventPublisher",
]
