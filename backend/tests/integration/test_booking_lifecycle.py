"""
End-to-end booking flow over a real schema: fund, book with discounts,
cancel early, and check that ledger, cache, reminders and outbox agree.
"""

from datetime import timedelta

from classcredits.core.enums import CancelledBy, CreditTransactionType, DiscountSource
from classcredits.models.booking import Booking, BookingStatus
from classcredits.models.scheduled_notification import ScheduledNotificationStatus
from classcredits.repositories.event_outbox_repository import EventOutboxRepository
from classcredits.repositories.factory import RepositoryFactory
from classcredits.services.reconciliation_service import ReconciliationService
from classcredits.services.scheduled_notification_service import ScheduledNotificationService
from tests.factories.discount_rules import always, fixed, rule


def test_book_then_cancel_early_restores_everything(
    db, clock, make_user, make_class_instance, fund, credit_service, booking_service
):
    user = make_user("Rae Kim")
    fund(user.id, 50)
    instance = make_class_instance(
        price=2000,
        discount_rules=[rule("inst-700", always(), fixed(700), name="Instance deal")],
        template_snapshot={"discount_rules": [rule("tpl-300", always(), fixed(300), name="Template deal")]},
    )
    reconciliation = ReconciliationService(db, clock)
    reminders = ScheduledNotificationService(db, clock)
    bookings = RepositoryFactory.create_booking_repository(db)
    instances = RepositoryFactory.create_class_instance_repository(db)

    booked = booking_service.book_class(user.id, instance.id)

    booking = db.get(Booking, booked.booking_id)
    assert booking.final_price == 1300
    assert booking.credits_used == 26
    assert booking.applied_discount["source"] == DiscountSource.INSTANCE_RULE.value
    assert booking.applied_discount["discount_cents"] == 700
    assert reconciliation.get_balance(user.id).available_credits == 24
    assert instances.refresh(instance.id).booked_count == 1
    pending = [r for r in reminders.list_for_booking(booking.id) if r.status == ScheduledNotificationStatus.PENDING.value]
    assert len(pending) == 1

    clock.advance(hours=2)
    cancelled = booking_service.cancel_booking(booking.id, cancelled_by=CancelledBy.CONSUMER)

    assert cancelled.refund_percentage == 100
    assert cancelled.refund_credits == 26
    assert cancelled.refund_amount_cents == 1300
    assert bookings.refresh(booking.id).status == BookingStatus.CANCELLED_BY_CONSUMER.value
    assert instances.refresh(instance.id).booked_count == 0
    assert all(r.status == ScheduledNotificationStatus.CANCELLED.value for r in reminders.list_for_booking(booking.id))

    history = credit_service.get_transaction_history(user.id)
    assert sorted(t.type for t in history) == sorted(
        [CreditTransactionType.GIFT.value, CreditTransactionType.SPEND.value, CreditTransactionType.REFUND.value]
    )
    assert sum(t.amount for t in history) == 50

    check = reconciliation.reconcile_user(user.id, dry_run=True)
    assert check.available_credits == 50
    assert check.lifetime_credits == 50
    assert check.inconsistency_count == 0

    event_types = {e.event_type for e in EventOutboxRepository(db).list_for_aggregate(booking.id)}
    assert event_types == {"booking.created", "booking.cancelled"}


def test_late_cancellation_keeps_half_and_ledger_stays_consistent(
    db, clock, make_user, make_class_instance, fund, booking_service
):
    user = make_user()
    fund(user.id, 50)
    instance = make_class_instance(start_in=timedelta(hours=30), price=2000)
    booked = booking_service.book_class(user.id, instance.id)

    clock.advance(hours=10)
    cancelled = booking_service.cancel_booking(booked.booking_id)

    assert cancelled.refund_percentage == 50
    assert cancelled.refund_credits == 20
    reconciliation = ReconciliationService(db, clock)
    assert reconciliation.get_balance(user.id).available_credits == 30
    assert reconciliation.reconcile_user(user.id).was_updated is False
