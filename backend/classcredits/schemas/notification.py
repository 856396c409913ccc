"""Schemas for scheduled notification targets."""

from __future__ import annotations

from typing import Literal, Tuple

from pydantic import BaseModel

BOOKINGS_ENTITY = "bookings"


class BookingEntity(BaseModel):
    """A notification about a single booking."""

    entity_type: Literal["bookings"] = BOOKINGS_ENTITY
    id: str

    def to_columns(self) -> Tuple[str, str]:
        return self.entity_type, self.id


# Only bookings carry reminders today; widen to a discriminated Union on
# ``entity_type`` when another target kind is introduced.
RelatedEntity = BookingEntity


def related_entity_from_columns(entity_type: str, entity_id: str) -> RelatedEntity:
    """Rebuild the typed entity from its stored (type, id) pair."""
    if entity_type == BOOKINGS_ENTITY:
        return BookingEntity(id=entity_id)
    raise ValueError(f"Unknown related entity type: {entity_type}")
