"""Tests for balance reads and ledger-driven cache repair."""

from datetime import timedelta

import pytest

from classcredits.repositories.factory import RepositoryFactory
from classcredits.services.credit_service import CreditService
from classcredits.services.reconciliation_service import ReconciliationService

ALICE = "01HUSER0000000000000000000A"
BOB = "01HUSER0000000000000000000B"


@pytest.fixture
def reconciler(db, clock) -> ReconciliationService:
    return ReconciliationService(db, clock)


def _corrupt(db, user_id: str, available: int, lifetime: int) -> None:
    cache = RepositoryFactory.create_balance_cache_repository(db).get_for_user(user_id)
    cache.available_credits = available
    cache.lifetime_credits = lifetime
    db.commit()


class TestGetBalance:
    def test_unknown_user_reads_zero(self, reconciler):
        snapshot = reconciler.get_balance(ALICE)

        assert snapshot.available_credits == 0
        assert snapshot.lifetime_credits == 0
        assert snapshot.last_updated is None

    def test_returns_cached_values(self, reconciler, credit_service):
        credit_service.gift_credits(ALICE, 50)
        credit_service.spend_credits(ALICE, 20)

        snapshot = reconciler.get_balance(ALICE)

        assert (snapshot.available_credits, snapshot.lifetime_credits) == (30, 50)

    def test_reconcile_flag_repairs_before_reading(self, db, reconciler, credit_service):
        credit_service.gift_credits(ALICE, 50)
        _corrupt(db, ALICE, available=7, lifetime=7)

        assert reconciler.get_balance(ALICE).available_credits == 7
        assert reconciler.get_balance(ALICE, reconcile=True).available_credits == 50


class TestReconcileUser:
    def test_consistent_cache_is_left_alone(self, reconciler, credit_service):
        credit_service.gift_credits(ALICE, 50)

        result = reconciler.reconcile_user(ALICE)

        assert result.was_updated is False
        assert result.inconsistency_count == 0
        assert (result.available_credits, result.lifetime_credits) == (50, 50)

    def test_drift_is_reported_and_corrected(self, db, reconciler, credit_service):
        credit_service.gift_credits(ALICE, 50)
        credit_service.spend_credits(ALICE, 20)
        _corrupt(db, ALICE, available=100, lifetime=40)

        result = reconciler.reconcile_user(ALICE)

        assert result.was_updated is True
        assert result.inconsistency_count == 2
        assert result.delta_available_credits == -70
        assert result.delta_lifetime_credits == 10
        snapshot = reconciler.get_balance(ALICE)
        assert (snapshot.available_credits, snapshot.lifetime_credits) == (30, 50)

    def test_reconcile_is_idempotent(self, db, reconciler, credit_service):
        credit_service.gift_credits(ALICE, 50)
        _corrupt(db, ALICE, available=1, lifetime=1)

        first = reconciler.reconcile_user(ALICE)
        second = reconciler.reconcile_user(ALICE)

        assert first.was_updated is True
        assert second.was_updated is False
        assert second.inconsistency_count == 0
        assert (second.available_credits, second.lifetime_credits) == (50, 50)

    def test_dry_run_reports_without_writing(self, db, reconciler, credit_service):
        credit_service.gift_credits(ALICE, 50)
        _corrupt(db, ALICE, available=3, lifetime=50)

        result = reconciler.reconcile_user(ALICE, dry_run=True)

        assert result.dry_run is True
        assert result.was_updated is False
        assert result.delta_available_credits == 47
        assert reconciler.get_balance(ALICE).available_credits == 3

    def test_missing_cache_row_is_created(self, db, reconciler, clock):
        RepositoryFactory.create_credit_repository(db).append(
            user_id=BOB, amount=15, type="gift", effective_at=clock()
        )
        db.commit()

        result = reconciler.reconcile_user(BOB)

        assert result.was_updated is True
        assert reconciler.get_balance(BOB).available_credits == 15

    def test_force_update_touches_timestamp_only(self, db, reconciler, credit_service, clock):
        credit_service.gift_credits(ALICE, 50)
        clock.advance(hours=1)

        result = reconciler.reconcile_user(ALICE, force_update=True)

        assert result.was_updated is False
        assert reconciler.get_balance(ALICE).last_updated == clock()

    def test_future_dated_entries_are_ignored(self, db, reconciler, credit_service, clock):
        credit_service.gift_credits(ALICE, 50)
        RepositoryFactory.create_credit_repository(db).append(
            user_id=ALICE, amount=25, type="purchase", effective_at=clock() + timedelta(days=1)
        )
        db.commit()

        result = reconciler.reconcile_user(ALICE)

        assert result.available_credits == 50
        assert result.was_updated is False


class TestReconcileUsers:
    def test_sweeps_ledger_and_cache_users(self, db, reconciler, credit_service):
        credit_service.gift_credits(ALICE, 50)
        credit_service.gift_credits(BOB, 10)
        _corrupt(db, BOB, available=0, lifetime=0)

        summary = reconciler.reconcile_users()

        assert summary["processed"] == 2
        assert summary["updated"] == 1
        assert summary["inconsistencies"] == 1
        assert summary["failed"] == 0

    def test_one_failure_does_not_stop_the_sweep(self, reconciler, credit_service, monkeypatch):
        credit_service.gift_credits(ALICE, 50)
        credit_service.gift_credits(BOB, 10)
        original = reconciler.reconcile_user

        def _flaky(user_id, **kwargs):
            if user_id == ALICE:
                raise RuntimeError("boom")
            return original(user_id, **kwargs)

        monkeypatch.setattr(reconciler, "reconcile_user", _flaky)

        summary = reconciler.reconcile_users([ALICE, BOB])

        assert summary["failed"] == 1
        assert summary["processed"] == 1


class TestLockOrdering:
    def test_spend_committed_while_waiting_for_the_lock_is_kept(
        self, db, clock, session_factory, reconciler, credit_service, monkeypatch
    ):
        credit_service.gift_credits(ALICE, 50)
        cache_repository = reconciler.balance_cache_repository
        acquire = cache_repository.get_or_create

        def acquire_after_concurrent_spend(user_id, now, for_update=False):
            other = session_factory()
            try:
                CreditService(other, clock).spend_credits(user_id, 20)
            finally:
                other.close()
            return acquire(user_id, now, for_update=for_update)

        monkeypatch.setattr(cache_repository, "get_or_create", acquire_after_concurrent_spend)

        result = reconciler.reconcile_user(ALICE)

        assert result.inconsistency_count == 0
        assert result.was_updated is False
        assert result.available_credits == 30
        cache = RepositoryFactory.create_balance_cache_repository(db).get_for_user(ALICE, for_update=True)
        assert cache.available_credits == 30
