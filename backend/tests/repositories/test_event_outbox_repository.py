"""Tests for EventOutboxRepository."""

from classcredits.models.event_outbox import EventOutboxStatus
from classcredits.repositories.event_outbox_repository import EventOutboxRepository
from classcredits.repositories.notification_delivery_repository import (
    NotificationDeliveryRepository,
)
from classcredits.services.notification_templates import RenderedNotification


class TestEnqueue:
    def test_enqueue_creates_pending_event(self, db):
        repo = EventOutboxRepository(db)

        event = repo.enqueue(
            event_type="booking.created", aggregate_id="b1", payload={"booking_id": "b1"}
        )

        assert event.status == EventOutboxStatus.PENDING.value
        assert event.attempt_count == 0
        assert event.idempotency_key == "booking.created:b1"

    def test_enqueue_is_idempotent_per_key(self, db):
        repo = EventOutboxRepository(db)

        first = repo.enqueue(event_type="booking.created", aggregate_id="b1", idempotency_key="k1")
        second = repo.enqueue(
            event_type="booking.created", aggregate_id="b1", idempotency_key="k1", payload={"x": 1}
        )

        assert first.id == second.id
        assert len(repo.list_for_aggregate("b1")) == 1


class TestStateUpdates:
    def test_mark_failed_schedules_retry_then_terminal(self, db, session_factory):
        repo = EventOutboxRepository(db)
        event = repo.enqueue(event_type="booking.created", aggregate_id="b2")
        db.commit()

        repo.mark_failed(event.id, attempt_count=1, backoff_seconds=30, error="timeout")
        db.commit()
        with session_factory() as fresh:
            row = EventOutboxRepository(fresh).get_by_id(event.id)
            assert row.status == EventOutboxStatus.PENDING.value
            assert row.attempt_count == 1
            assert row.last_error == "timeout"

        repo.mark_failed(event.id, attempt_count=5, backoff_seconds=7200, terminal=True)
        db.commit()
        with session_factory() as fresh:
            assert EventOutboxRepository(fresh).get_by_id(event.id).status == EventOutboxStatus.FAILED.value

    def test_fetch_pending_skips_sent_events(self, db):
        repo = EventOutboxRepository(db)
        sent = repo.enqueue(event_type="booking.created", aggregate_id="b3")
        pending = repo.enqueue(event_type="booking.created", aggregate_id="b4")
        repo.mark_sent(sent.id, attempt_count=1)
        db.commit()

        assert [e.id for e in repo.fetch_pending()] == [pending.id]


def test_notification_delivery_counts_repeated_sends(db):
    repo = NotificationDeliveryRepository(db)
    first_message = RenderedNotification(
        event_type="booking.created",
        recipient="rae.kim@example.com",
        subject="Booking Confirmed: Morning Flow",
        body="first",
    )
    second_message = RenderedNotification(
        event_type="booking.created",
        recipient="rae.kim@example.com",
        subject="Booking Confirmed: Morning Flow",
        body="second",
    )

    first = repo.record_delivery("booking.created:b1", first_message, {"a": 1})
    second = repo.record_delivery("booking.created:b1", second_message, {"a": 2})

    assert first.id == second.id
    assert second.attempt_count == 2
    assert second.body == "second"
    assert second.payload == {"a": 2}
    assert repo.find_by_key("booking.created:b2") is None
