"""Event publisher - writes events to the outbox inside the caller's transaction."""
from datetime import datetime
import logging
from typing import Any, Dict, Protocol

from classcredits.models.event_outbox import EventOutbox
from classcredits.repositories.event_outbox_repository import EventOutboxRepository

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    event_type: str

    @property
    def aggregate_id(self) -> str:
        ...

    @property
    def idempotency_key(self) -> str:
        ...

    def to_dict(self) -> Dict[str, Any]:
        ...


class EventPublisher:
    """Publishes domain events to the outbox for delivery after commit."""

    def __init__(self, outbox_repository: EventOutboxRepository):
        self.outbox_repo = outbox_repository

    def publish(self, event: Event) -> EventOutbox:
        """
        Queue an event for background delivery.

        Republishing an event with the same idempotency key returns the existing row.
        """
        payload = event.to_dict()

        # Convert datetime objects to ISO strings for JSON serialization
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()

        row = self.outbox_repo.enqueue(
            event_type=event.event_type,
            aggregate_id=event.aggregate_id,
            payload=payload,
            idempotency_key=event.idempotency_key,
        )
        logger.debug("Queued %s for %s (outbox %s)", event.event_type, event.aggregate_id, row.id)
        return row
