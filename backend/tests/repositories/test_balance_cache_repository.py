"""Tests for the cached balance rows."""

from classcredits.repositories.balance_cache_repository import BalanceCacheRepository
from tests.factories.common import NOW

USER_ID = "01HUSER00000000000000000001"


def test_get_or_create_inserts_zero_row_once(db):
    repo = BalanceCacheRepository(db)

    first = repo.get_or_create(USER_ID, NOW)
    second = repo.get_or_create(USER_ID, NOW)

    assert first is second
    assert (first.available_credits, first.lifetime_credits) == (0, 0)
    assert repo.all_user_ids() == [USER_ID]


def test_apply_delta_and_overwrite(db):
    repo = BalanceCacheRepository(db)
    cache = repo.get_or_create(USER_ID, NOW)

    repo.apply_delta(cache, available_delta=50, lifetime_delta=50, now=NOW)
    repo.apply_delta(cache, available_delta=-20, now=NOW)
    assert (cache.available_credits, cache.lifetime_credits) == (30, 50)

    repo.overwrite(cache, available=7, lifetime=9, now=NOW)
    reloaded = repo.get_for_user(USER_ID)
    assert (reloaded.available_credits, reloaded.lifetime_credits) == (7, 9)
