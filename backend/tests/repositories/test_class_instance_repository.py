"""Tests for capacity and lifecycle compare-and-set updates."""

from classcredits.repositories.class_instance_repository import ClassInstanceRepository
from tests.factories.common import NOW


def test_increment_stops_at_capacity(db, make_class_instance):
    instance = make_class_instance(capacity=2)
    repo = ClassInstanceRepository(db)

    assert repo.try_increment_booked_count(instance.id, 2, NOW) is True
    assert repo.try_increment_booked_count(instance.id, 2, NOW) is True
    assert repo.try_increment_booked_count(instance.id, 2, NOW) is False
    assert repo.refresh(instance.id).booked_count == 2


def test_decrement_never_goes_negative(db, make_class_instance):
    instance = make_class_instance(booked_count=1)
    repo = ClassInstanceRepository(db)

    repo.decrement_booked_count(instance.id, NOW)
    repo.decrement_booked_count(instance.id, NOW)

    assert repo.refresh(instance.id).booked_count == 0


def test_transition_status_is_compare_and_set(db, make_class_instance):
    instance = make_class_instance()
    repo = ClassInstanceRepository(db)

    assert repo.transition_status(instance.id, "scheduled", "cancelled", NOW) is True
    assert repo.transition_status(instance.id, "scheduled", "completed", NOW) is False
    assert repo.refresh(instance.id).status == "cancelled"
