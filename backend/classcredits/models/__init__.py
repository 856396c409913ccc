"""
Database models for the credits ledger and booking engine.

The models are organized by functionality:
- Credit ledger and balance cache
- Class instances (external data consumed by bookings)
- Bookings and their frozen snapshots
- Scheduled notifications (class reminders)
- Event outbox for post-commit notifications
- Discount browse summary
"""

from .booking import ACTIVE_BOOKING_STATUSES, TERMINAL_BOOKING_STATUSES, Booking, BookingStatus
from .class_instance import ClassInstance, ClassInstanceStatus
from .credit import CreditTransaction, ImmutableLedgerError, UserBalanceCache
from .discount_summary import ClassDiscountSummary
from .event_outbox import EventOutbox, EventOutboxStatus, NotificationDelivery
from .scheduled_notification import ScheduledNotification, ScheduledNotificationStatus
from .user import User

__all__ = [
    "ACTIVE_BOOKING_STATUSES",
    "TERMINAL_BOOKING_STATUSES",
    "Booking",
    "BookingStatus",
    "ClassDiscountSummary",
    "ClassInstance",
    "ClassInstanceStatus",
    "CreditTransaction",
    "EventOutbox",
    "EventOutboxStatus",
    "ImmutableLedgerError",
    "NotificationDelivery",
    "ScheduledNotification",
    "ScheduledNotificationStatus",
    "User",
    "UserBalanceCache",
]
