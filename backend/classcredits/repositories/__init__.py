"""
Repository layer for the ledger and booking engine.

Repositories encapsulate data access; services own transactions.
"""

from .balance_cache_repository import BalanceCacheRepository
from .base_repository import BaseRepository
from .booking_repository import BookingRepository
from .class_instance_repository import ClassInstanceRepository
from .credit_repository import CreditRepository
from .discount_summary_repository import DiscountSummaryRepository
from .event_outbox_repository import EventOutboxRepository
from .factory import RepositoryFactory
from .notification_delivery_repository import NotificationDeliveryRepository
from .scheduled_notification_repository import ScheduledNotificationRepository
from .user_repository import UserRepository

__all__ = [
    "BalanceCacheRepository",
    "BaseRepository",
    "BookingRepository",
    "ClassInstanceRepository",
    "CreditRepository",
    "DiscountSummaryRepository",
    "EventOutboxRepository",
    "NotificationDeliveryRepository",
    "RepositoryFactory",
    "ScheduledNotificationRepository",
    "UserRepository",
]
