"""
Booking notification sender used by the outbox dispatcher.

Renders the event payload into a customer message and records it in
``notification_delivery``. The idempotency key of the outbox event makes a
redelivered event update its existing row instead of sending twice.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from classcredits.database import SessionLocal
from classcredits.repositories.factory import RepositoryFactory

from .notification_templates import RenderedNotification, render_notification

logger = logging.getLogger(__name__)


class NotificationProviderTemporaryError(RuntimeError):
    """Delivery failed for a reason worth retrying."""


@dataclass(slots=True)
class NotificationDispatchResult:
    idempotency_key: str
    event_type: str
    attempt_count: int
    message: RenderedNotification


class NotificationProvider:
    """Sends one booking notification per outbox event."""

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        self._session_factory = session_factory or SessionLocal

    def send(
        self,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> NotificationDispatchResult:
        """
        Render and deliver a notification.

        Raises:
            ValueError: Missing idempotency key
            NotificationRenderError: Unknown event type or incomplete payload
            NotificationProviderTemporaryError: The delivery record could not be written
        """
        if not idempotency_key:
            raise ValueError("idempotency_key is required for notification dispatch")

        message = render_notification(event_type, payload or {})
        if message.recipient is None:
            logger.warning("No recipient email on %s (%s)", event_type, idempotency_key)

        session = self._session_factory()
        try:
            record = RepositoryFactory.create_notification_delivery_repository(session).record_delivery(
                idempotency_key, message, payload or {}
            )
            session.commit()
        except OperationalError as exc:
            session.rollback()
            raise NotificationProviderTemporaryError(
                f"Could not record {event_type} delivery: {exc}"
            ) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        logger.info(
            "Sent %s to %s: %s (attempt %s)",
            event_type,
            message.recipient or "<no recipient>",
            message.subject,
            record.attempt_count,
        )
        return NotificationDispatchResult(
            idempotency_key=idempotency_key,
            event_type=event_type,
            attempt_count=record.attempt_count,
            message=message,
        )
