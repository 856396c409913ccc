"""Tests for ledger appends and folds."""

from datetime import timedelta

import pytest

from classcredits.core.exceptions import InvalidAmountException
from classcredits.repositories.credit_repository import CreditRepository
from tests.factories.common import NOW

USER_ID = "01HUSER00000000000000000001"


@pytest.fixture
def repo(db) -> CreditRepository:
    return CreditRepository(db)


def test_zero_amount_is_rejected(repo):
    with pytest.raises(InvalidAmountException):
        repo.append(user_id=USER_ID, amount=0, type="gift")


def test_sum_and_lifetime_fold_the_ledger(repo):
    repo.append(user_id=USER_ID, amount=50, type="gift", effective_at=NOW)
    repo.append(user_id=USER_ID, amount=20, type="purchase", effective_at=NOW)
    repo.append(user_id=USER_ID, amount=-26, type="spend", effective_at=NOW)
    repo.append(user_id=USER_ID, amount=13, type="refund", effective_at=NOW)

    assert repo.sum_for_user(USER_ID, as_of=NOW) == 57
    assert repo.lifetime_for_user(USER_ID, as_of=NOW) == 70


def test_as_of_excludes_future_entries(repo):
    repo.append(user_id=USER_ID, amount=50, type="gift", effective_at=NOW)
    repo.append(user_id=USER_ID, amount=30, type="gift", effective_at=NOW + timedelta(days=2))

    assert repo.sum_for_user(USER_ID, as_of=NOW) == 50
    assert repo.sum_for_user(USER_ID, as_of=NOW + timedelta(days=3)) == 80


def test_unknown_user_folds_to_zero(repo):
    assert repo.sum_for_user("nobody", as_of=NOW) == 0
    assert repo.lifetime_for_user("nobody", as_of=NOW) == 0


def test_lookup_by_booking_and_distinct_users(repo):
    repo.append(user_id=USER_ID, amount=50, type="gift", effective_at=NOW)
    repo.append(user_id=USER_ID, amount=-10, type="spend", effective_at=NOW, booking_id="b1")
    repo.append(user_id="01HUSER00000000000000000002", amount=5, type="gift", effective_at=NOW)

    assert [e.amount for e in repo.list_for_booking("b1")] == [-10]
    assert repo.distinct_user_ids() == ["01HUSER00000000000000000001", "01HUSER00000000000000000002"]
