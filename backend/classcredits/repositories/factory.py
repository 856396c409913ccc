# backend/classcredits/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .balance_cache_repository import BalanceCacheRepository
    from .booking_repository import BookingRepository
    from .class_instance_repository import ClassInstanceRepository
    from .credit_repository import CreditRepository
    from .discount_summary_repository import DiscountSummaryRepository
    from .event_outbox_repository import EventOutboxRepository
    from .notification_delivery_repository import NotificationDeliveryRepository
    from .scheduled_notification_repository import ScheduledNotificationRepository
    from .user_repository import UserRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_credit_repository(db: Session) -> "CreditRepository":
        """Create repository for ledger appends and folds."""
        from .credit_repository import CreditRepository

        return CreditRepository(db)

    @staticmethod
    def create_balance_cache_repository(db: Session) -> "BalanceCacheRepository":
        """Create repository for cached balances."""
        from .balance_cache_repository import BalanceCacheRepository

        return BalanceCacheRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking operations."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_class_instance_repository(db: Session) -> "ClassInstanceRepository":
        """Create repository for class instance capacity and lifecycle."""
        from .class_instance_repository import ClassInstanceRepository

        return ClassInstanceRepository(db)

    @staticmethod
    def create_scheduled_notification_repository(db: Session) -> "ScheduledNotificationRepository":
        """Create repository for scheduled reminders."""
        from .scheduled_notification_repository import ScheduledNotificationRepository

        return ScheduledNotificationRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> "EventOutboxRepository":
        """Create repository for the notification outbox."""
        from .event_outbox_repository import EventOutboxRepository

        return EventOutboxRepository(db)

    @staticmethod
    def create_notification_delivery_repository(db: Session) -> "NotificationDeliveryRepository":
        """Create repository for provider delivery tracking."""
        from .notification_delivery_repository import NotificationDeliveryRepository

        return NotificationDeliveryRepository(db)

    @staticmethod
    def create_discount_summary_repository(db: Session) -> "DiscountSummaryRepository":
        """Create repository for the discounted-classes browse table."""
        from .discount_summary_repository import DiscountSummaryRepository

        return DiscountSummaryRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        """Create repository for user lookups."""
        from .user_repository import UserRepository

        return UserRepository(db)
