"""
Scheduled reminder sub-ledger.

Keeps at most one pending reminder per (booking, type). Scheduling is
idempotent and cancellation is safe to repeat; reminders are plain rows, so a
reminder written inside a booking transaction only exists if that booking
commits.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Callable, Dict, List, Optional, TypeVar

from sqlalchemy.orm import Session

from classcredits.core.clock import Clock
from classcredits.core.enums import ReminderType
from classcredits.models.scheduled_notification import (
    ScheduledNotification,
    ScheduledNotificationStatus,
)
from classcredits.monitoring.prometheus_metrics import prometheus_metrics
from classcredits.repositories.factory import RepositoryFactory
from classcredits.schemas.notification import (
    BOOKINGS_ENTITY,
    BookingEntity,
    RelatedEntity,
    related_entity_from_columns,
)

from .base import BaseService

logger = logging.getLogger(__name__)

T = TypeVar("T")

REMINDER_OFFSETS: Dict[ReminderType, timedelta] = {
    ReminderType.CLASS_REMINDER_1H: timedelta(hours=1),
    ReminderType.CLASS_REMINDER_3H: timedelta(hours=3),
    ReminderType.CLASS_REMINDER_30M: timedelta(minutes=30),
}


class ScheduledNotificationService(BaseService):
    """Schedules, cancels and settles class reminders."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.repository = RepositoryFactory.create_scheduled_notification_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    def _run(self, func: Callable[[], T], use_transaction: bool) -> T:
        if use_transaction:
            with self.transaction():
                return func()
        return func()

    @BaseService.measure_operation("schedule_class_reminder")
    def schedule_class_reminder(
        self,
        booking_id: str,
        user_id: str,
        class_start_time: datetime,
        reminder_type: ReminderType | str = ReminderType.CLASS_REMINDER_1H,
        use_transaction: bool = True,
    ) -> Optional[str]:
        """
        Arm a reminder ``offset(type)`` before class start.

        Returns:
            The reminder id, the id of an already pending reminder for the same
            booking and type, or None when the reminder time has already passed
        """
        kind = ReminderType(reminder_type)
        scheduled_for = class_start_time - REMINDER_OFFSETS[kind]
        now = self.now()
        if scheduled_for <= now:
            self.logger.debug(
                "Skipping %s for booking %s: reminder time %s already passed",
                kind.value,
                booking_id,
                scheduled_for.isoformat(),
            )
            prometheus_metrics.record_reminder(kind.value, "skipped")
            return None

        entity_type, entity_id = BookingEntity(id=booking_id).to_columns()

        def _schedule() -> str:
            existing = self.repository.find_pending(entity_type, entity_id, kind.value)
            if existing is not None:
                prometheus_metrics.record_reminder(kind.value, "deduplicated")
                return str(existing.id)
            row = self.repository.create(
                type=kind.value,
                scheduled_for=scheduled_for,
                status=ScheduledNotificationStatus.PENDING.value,
                related_entity_type=entity_type,
                related_entity_id=entity_id,
                recipient_user_id=user_id,
                created_at=now,
            )
            prometheus_metrics.record_reminder(kind.value, "scheduled")
            self.logger.info(
                "Scheduled %s for booking %s at %s", kind.value, booking_id, scheduled_for.isoformat()
            )
            return str(row.id)

        return self._run(_schedule, use_transaction)

    @BaseService.measure_operation("cancel_reminders_by_booking")
    def cancel_by_booking_id(self, booking_id: str, use_transaction: bool = True) -> int:
        """Cancel every pending reminder of a booking; returns the number cancelled."""
        entity_type, entity_id = BookingEntity(id=booking_id).to_columns()

        def _cancel() -> int:
            return self.repository.cancel_pending_for_entities(entity_type, [entity_id], self.now())

        cancelled = self._run(_cancel, use_transaction)
        if cancelled:
            self.logger.info("Cancelled %d reminder(s) for booking %s", cancelled, booking_id)
        return cancelled

    @BaseService.measure_operation("cancel_reminders_by_class")
    def cancel_by_class_instance_id(self, class_instance_id: str, use_transaction: bool = True) -> int:
        """Cancel pending reminders of every non-deleted booking on a class instance."""

        def _cancel() -> int:
            booking_ids = self.booking_repository.list_ids_for_instance(class_instance_id)
            return self.repository.cancel_pending_for_entities(
                BOOKINGS_ENTITY, booking_ids, self.now()
            )

        cancelled = self._run(_cancel, use_transaction)
        self.logger.info("Cancelled %d reminder(s) for class %s", cancelled, class_instance_id)
        return cancelled

    @BaseService.measure_operation("reschedule_class_reminder")
    def reschedule_class_reminder(
        self,
        booking_id: str,
        user_id: str,
        new_class_start_time: datetime,
        reminder_type: ReminderType | str = ReminderType.CLASS_REMINDER_1H,
        use_transaction: bool = True,
    ) -> Optional[str]:
        """Replace the pending reminder of ``reminder_type`` with one for the new start time."""
        kind = ReminderType(reminder_type)
        entity_type, entity_id = BookingEntity(id=booking_id).to_columns()

        def _reschedule() -> Optional[str]:
            existing = self.repository.find_pending(entity_type, entity_id, kind.value)
            if existing is not None:
                self.repository.finish_pending(
                    existing.id,
                    ScheduledNotificationStatus.CANCELLED,
                    cancelled_at=self.now(),
                )
            return self.schedule_class_reminder(
                booking_id, user_id, new_class_start_time, kind, use_transaction=False
            )

        return self._run(_reschedule, use_transaction)

    def mark_as_sent(self, notification_id: str, use_transaction: bool = True) -> bool:
        """Settle a pending reminder as sent; False if it was no longer pending."""

        def _mark() -> bool:
            return self.repository.finish_pending(
                notification_id, ScheduledNotificationStatus.SENT, sent_at=self.now()
            )

        return self._run(_mark, use_transaction)

    def mark_as_cancelled(self, notification_id: str, use_transaction: bool = True) -> bool:
        def _mark() -> bool:
            return self.repository.finish_pending(
                notification_id, ScheduledNotificationStatus.CANCELLED, cancelled_at=self.now()
            )

        return self._run(_mark, use_transaction)

    def mark_as_failed(
        self, notification_id: str, error_message: str, use_transaction: bool = True
    ) -> bool:
        def _mark() -> bool:
            return self.repository.finish_pending(
                notification_id,
                ScheduledNotificationStatus.FAILED,
                failed_at=self.now(),
                error_message=error_message[:1000],
            )

        return self._run(_mark, use_transaction)

    def get_due(self, now: Optional[datetime] = None, limit: int = 200) -> List[ScheduledNotification]:
        return self.repository.get_due(now or self.now(), limit=limit)

    def list_for_booking(self, booking_id: str) -> List[ScheduledNotification]:
        entity_type, entity_id = BookingEntity(id=booking_id).to_columns()
        return self.repository.list_for_entity(entity_type, entity_id)

    @staticmethod
    def get_related_entity(notification: ScheduledNotification) -> RelatedEntity:
        return related_entity_from_columns(
            notification.related_entity_type, notification.related_entity_id
        )
