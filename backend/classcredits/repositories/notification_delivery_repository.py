"""Delivered booking notifications, keyed by outbox idempotency key."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from classcredits.models.event_outbox import NotificationDelivery

from .base_repository import BaseRepository

if TYPE_CHECKING:
    from classcredits.services.notification_templates import RenderedNotification


class NotificationDeliveryRepository(BaseRepository[NotificationDelivery]):
    def __init__(self, db: Session):
        super().__init__(db, NotificationDelivery)

    def find_by_key(self, idempotency_key: str) -> Optional[NotificationDelivery]:
        stmt = select(NotificationDelivery).where(
            NotificationDelivery.idempotency_key == idempotency_key
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def record_delivery(
        self,
        idempotency_key: str,
        message: "RenderedNotification",
        payload: Dict[str, Any],
    ) -> NotificationDelivery:
        """
        Store a sent message.

        A key that was already delivered keeps its row: the message is replaced
        and ``attempt_count`` goes up by one.
        """
        existing = self.find_by_key(idempotency_key)
        if existing is None:
            return self.create(
                event_type=message.event_type,
                idempotency_key=idempotency_key,
                recipient=message.recipient,
                subject=message.subject,
                body=message.body,
                payload=payload,
                attempt_count=1,
            )

        existing.recipient = message.recipient
        existing.subject = message.subject
        existing.body = message.body
        existing.payload = payload
        existing.attempt_count += 1
        existing.delivered_at = datetime.now(timezone.utc)
        self.db.flush()
        return existing
