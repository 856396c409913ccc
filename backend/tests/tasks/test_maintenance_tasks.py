"""Tests for the periodic booking, ledger and discount sweeps."""

from datetime import timedelta

from classcredits.core.clock import utc_now
from classcredits.models.booking import Booking, BookingStatus
from classcredits.models.class_instance import ClassInstance, ClassInstanceStatus
from classcredits.models.credit import UserBalanceCache
from classcredits.models.discount_summary import ClassDiscountSummary
from classcredits.services.booking_service import BookingService
from classcredits.services.credit_service import CreditService
from classcredits.tasks.booking_tasks import mark_classes_completed, mark_no_shows
from classcredits.tasks.credit_tasks import reconcile_balances
from classcredits.tasks.discount_tasks import rebuild_discount_summary
from tests.factories.common import FrozenClock
from tests.factories.discount_rules import always, fixed, rule


def test_mark_no_shows_task(db, session_factory, make_user, make_class_instance):
    clock = FrozenClock(utc_now() - timedelta(hours=6))
    user = make_user()
    CreditService(db, clock).gift_credits(user.id, 50)
    instance = make_class_instance(now=clock(), start_in=timedelta(hours=1), price=500)
    booking_id = BookingService(db, clock).book_class(user.id, instance.id).booking_id

    result = mark_no_shows()

    assert result["marked"] == 1
    with session_factory() as fresh:
        assert fresh.get(Booking, booking_id).status == BookingStatus.NO_SHOW.value
        assert fresh.get(ClassInstance, instance.id).booked_count == 0


def test_mark_classes_completed_task(db, session_factory, make_class_instance):
    instance = make_class_instance(now=utc_now(), start_in=timedelta(hours=-6))

    result = mark_classes_completed()

    assert result["marked"] == 1
    with session_factory() as fresh:
        assert fresh.get(ClassInstance, instance.id).status == ClassInstanceStatus.COMPLETED.value


def test_reconcile_balances_task_repairs_drift_in_chunks(db, session_factory):
    credits = CreditService(db)
    credits.gift_credits("01HUSER000000000000000000A", 50)
    credits.gift_credits("01HUSER000000000000000000B", 20)
    cache = db.get(UserBalanceCache, "01HUSER000000000000000000B")
    cache.available_credits = 999
    db.commit()

    result = reconcile_balances(batch_size=1)

    assert result["processed"] == 2
    assert result["inconsistencies"] == 1
    assert result["updated"] == 1
    assert result["dry_run"] is False
    with session_factory() as fresh:
        assert fresh.get(UserBalanceCache, "01HUSER000000000000000000B").available_credits == 20


def test_reconcile_balances_dry_run_writes_nothing(db, session_factory):
    CreditService(db).gift_credits("01HUSER000000000000000000A", 50)
    cache = db.get(UserBalanceCache, "01HUSER000000000000000000A")
    cache.available_credits = 1
    db.commit()

    result = reconcile_balances(dry_run=True)

    assert result["inconsistencies"] == 1
    assert result["updated"] == 0
    with session_factory() as fresh:
        assert fresh.get(UserBalanceCache, "01HUSER000000000000000000A").available_credits == 1


def test_rebuild_discount_summary_task(db, session_factory, make_class_instance):
    make_class_instance(
        now=utc_now(),
        start_in=timedelta(hours=5),
        discount_rules=[rule("flash", always(), fixed(500))],
    )

    result = rebuild_discount_summary()

    assert result["updated"] == 1
    with session_factory() as fresh:
        assert fresh.query(ClassDiscountSummary).one().final_price == 1500
