# backend/classcredits/tasks/notification_tasks.py
"""
Celery tasks for notification delivery.

Implements a two-step outbox workflow:
1. `outbox.dispatch_pending` periodically enqueues delivery tasks.
2. `outbox.deliver_event` performs delivery with retries and backoff.

Due class reminders are turned into ``booking.reminder`` outbox events by
`dispatch_due_reminders`, in the same transaction that settles the reminder.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from time import monotonic
from typing import Any, Iterator, Optional, TypedDict, cast

from celery.app.task import Task  # noqa: F401 - used for type hints
from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from classcredits.database import SessionLocal
from classcredits.events import BookingReminder, EventPublisher
from classcredits.monitoring.prometheus_metrics import PrometheusMetrics
from classcredits.repositories.factory import RepositoryFactory
from classcredits.services.notification_provider import (
    NotificationProvider,
    NotificationProviderTemporaryError,
)
from classcredits.services.notification_templates import NotificationRenderError
from classcredits.services.scheduled_notification_service import ScheduledNotificationService
from classcredits.tasks.celery_app import celery_app, typed_task

logger = get_task_logger(__name__)

MAX_DELIVERY_ATTEMPTS = 5
BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]


class ReminderDispatchResults(TypedDict):
    processed: int
    sent: int
    skipped: int
    failed: int
    processed_at: str


def _next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(BACKOFF_SECONDS) - 1))
    return BACKOFF_SECONDS[index]


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Provide transactional scope for use in tasks."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@celery_app.task(name="outbox.dispatch_pending", max_retries=0, queue="notifications")
def dispatch_pending() -> int:
    """
    Fetch pending outbox events and enqueue delivery tasks.

    Returns the number of events scheduled.
    """
    with _session_scope() as session:
        repo = RepositoryFactory.create_event_outbox_repository(session)
        pending = repo.fetch_pending(limit=200)
        for event in pending:
            deliver_event.apply_async((event.id,), queue="notifications")
        scheduled: int = len(pending)
        if scheduled:
            logger.info("Scheduled %s outbox events for delivery", scheduled)
        return scheduled


@celery_app.task(
    name="outbox.deliver_event",
    bind=True,
    max_retries=MAX_DELIVERY_ATTEMPTS,
    default_retry_delay=BACKOFF_SECONDS[0],
    queue="notifications",
)
def deliver_event(self: "Task[Any, Any]", event_id: str) -> Optional[str]:
    """Deliver a single outbox event."""
    provider = NotificationProvider()
    session = SessionLocal()
    start: Optional[float] = None

    try:
        repo = RepositoryFactory.create_event_outbox_repository(session)
        event = repo.get_by_id(event_id, for_update=False)
        if event is None:
            logger.warning("Outbox event %s missing; skipping", event_id)
            session.commit()
            return None

        attempt_number = event.attempt_count + 1
        PrometheusMetrics.record_notification_attempt(event.event_type)

        try:
            start = monotonic()
            provider.send(
                event_type=event.event_type,
                payload=event.payload,
                idempotency_key=event.idempotency_key,
            )
            duration = (monotonic() - start) if start is not None else 0.0
            repo.mark_sent(event.id, attempt_number)
            session.commit()
            PrometheusMetrics.observe_notification_dispatch(event.event_type, duration)
            PrometheusMetrics.record_notification_outcome(event.event_type, "sent")
            logger.info(
                "Delivered outbox event %s type=%s attempts=%s",
                event.id,
                event.event_type,
                attempt_number,
            )
            return cast(str, event.id)
        except Exception as exc:
            duration = (monotonic() - start) if start is not None else 0.0
            PrometheusMetrics.observe_notification_dispatch(event.event_type, duration)
            backoff = _next_backoff(attempt_number)
            # An event that cannot be rendered will never succeed
            terminal = attempt_number >= MAX_DELIVERY_ATTEMPTS or isinstance(
                exc, NotificationRenderError
            )
            repo.mark_failed(
                event.id,
                attempt_count=attempt_number,
                backoff_seconds=backoff,
                error=str(exc),
                terminal=terminal,
            )
            session.commit()
            if terminal:
                PrometheusMetrics.record_notification_outcome(event.event_type, "failed")
                logger.error(
                    "Outbox event %s failed permanently after %s attempts",
                    event.id,
                    attempt_number,
                )
                raise
            if isinstance(exc, NotificationProviderTemporaryError):
                logger.warning(
                    "Retrying outbox event %s attempt=%s backoff=%ss",
                    event.id,
                    attempt_number,
                    backoff,
                )
            else:
                logger.exception(
                    "Error delivering outbox event %s; retrying in %ss",
                    event.id,
                    backoff,
                )
            raise self.retry(countdown=backoff, exc=exc)
    finally:
        session.close()


@typed_task(name="classcredits.tasks.notification_tasks.dispatch_due_reminders", queue="notifications")
def dispatch_due_reminders(limit: int = 200) -> ReminderDispatchResults:
    """
    Publish a ``booking.reminder`` event for every due pending reminder.

    Reminders whose booking is gone or no longer active are cancelled instead.
    A reminder that cannot be published is marked failed and the sweep moves on.
    """
    sent = skipped = failed = 0
    session = SessionLocal()
    try:
        service = ScheduledNotificationService(session)
        bookings = RepositoryFactory.create_booking_repository(session)
        publisher = EventPublisher(RepositoryFactory.create_event_outbox_repository(session))

        due = service.get_due(limit=limit)
        for reminder in due:
            reminder_id = reminder.id
            reminder_type = reminder.type
            try:
                with service.transaction():
                    entity = service.get_related_entity(reminder)
                    booking = bookings.get_by_id(entity.id, populate_existing=True)
                    if booking is None or not booking.is_active:
                        service.mark_as_cancelled(reminder_id, use_transaction=False)
                        skipped += 1
                        continue
                    publisher.publish(
                        BookingReminder.from_booking(
                            booking, notification_id=reminder_id, reminder_type=reminder_type
                        )
                    )
                    service.mark_as_sent(reminder_id, use_transaction=False)
                sent += 1
                PrometheusMetrics.record_reminder(reminder_type, "sent")
            except Exception as exc:
                failed += 1
                logger.error("Failed to dispatch reminder %s: %s", reminder_id, exc)
                PrometheusMetrics.record_reminder(reminder_type, "failed")
                try:
                    service.mark_as_failed(reminder_id, str(exc))
                except Exception as mark_exc:
                    logger.error("Could not mark reminder %s failed: %s", reminder_id, mark_exc)
    finally:
        session.close()

    if sent or failed:
        logger.info("Reminder dispatch: sent=%s skipped=%s failed=%s", sent, skipped, failed)
    return {
        "processed": sent + skipped + failed,
        "sent": sent,
        "skipped": skipped,
        "failed": failed,
        "processed_at": datetime.now(timezone.utc).isoformat(),
    }
