import pytest

from classcredits.schemas.notification import (
    BOOKINGS_ENTITY,
    BookingEntity,
    related_entity_from_columns,
)


def test_booking_entity_round_trips_through_columns():
    entity = BookingEntity(id="01HBOOKING0000000000000000")

    entity_type, entity_id = entity.to_columns()

    assert entity_type == BOOKINGS_ENTITY
    assert related_entity_from_columns(entity_type, entity_id) == entity


def test_unknown_entity_type_is_rejected():
    with pytest.raises(ValueError, match="Unknown related entity type"):
        related_entity_from_columns("venues", "01HVENUE00000000000000000")
