# backend/classcredits/repositories/scheduled_notification_repository.py
"""
Scheduled notification repository.

Pending rows are cancelled, sent, or failed through conditional UPDATEs on
``status = 'pending'`` so repeated calls are harmless.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, List, Optional, Sequence

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classcredits.core.exceptions import RepositoryException
from classcredits.models.scheduled_notification import (
    ScheduledNotification,
    ScheduledNotificationStatus,
)

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

_PENDING = ScheduledNotificationStatus.PENDING.value


class ScheduledNotificationRepository(BaseRepository[ScheduledNotification]):
    """Data access for scheduled reminders."""

    def __init__(self, db: Session):
        super().__init__(db, ScheduledNotification)

    def find_pending(
        self, entity_type: str, entity_id: str, notification_type: str
    ) -> Optional[ScheduledNotification]:
        stmt = (
            select(ScheduledNotification)
            .where(
                and_(
                    ScheduledNotification.related_entity_type == entity_type,
                    ScheduledNotification.related_entity_id == entity_id,
                    ScheduledNotification.type == notification_type,
                    ScheduledNotification.status == _PENDING,
                )
            )
            .limit(1)
        )
        results = self._execute_list(stmt)
        return results[0] if results else None

    def list_for_entity(self, entity_type: str, entity_id: str) -> List[ScheduledNotification]:
        stmt = (
            select(ScheduledNotification)
            .where(
                and_(
                    ScheduledNotification.related_entity_type == entity_type,
                    ScheduledNotification.related_entity_id == entity_id,
                )
            )
            .order_by(ScheduledNotification.scheduled_for.asc())
        )
        return self._execute_list(stmt)

    def cancel_pending_for_entities(
        self, entity_type: str, entity_ids: Sequence[str], now: datetime
    ) -> int:
        """Cancel every pending row for the given entities; returns the number cancelled."""
        if not entity_ids:
            return 0
        try:
            result = self.db.execute(
                update(ScheduledNotification)
                .where(
                    and_(
                        ScheduledNotification.related_entity_type == entity_type,
                        ScheduledNotification.related_entity_id.in_(list(entity_ids)),
                        ScheduledNotification.status == _PENDING,
                    )
                )
                .values(status=ScheduledNotificationStatus.CANCELLED.value, cancelled_at=now)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to cancel reminders for %s: %s", list(entity_ids), exc)
            raise RepositoryException(f"Failed to cancel reminders: {exc}") from exc
        return int(result.rowcount or 0)

    def get_due(self, now: datetime, limit: int = 200) -> List[ScheduledNotification]:
        stmt = (
            select(ScheduledNotification)
            .where(
                and_(
                    ScheduledNotification.status == _PENDING,
                    ScheduledNotification.scheduled_for <= now,
                )
            )
            .order_by(ScheduledNotification.scheduled_for.asc(), ScheduledNotification.id.asc())
            .limit(limit)
        )
        if self.dialect_name == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)
        return self._execute_list(stmt)

    def finish_pending(self, notification_id: str, to_status: ScheduledNotificationStatus, **values: Any) -> bool:
        """Move a pending row to a final status; False if it was no longer pending."""
        try:
            result = self.db.execute(
                update(ScheduledNotification)
                .where(
                    and_(
                        ScheduledNotification.id == notification_id,
                        ScheduledNotification.status == _PENDING,
                    )
                )
                .values(status=to_status.value, **values)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to update reminder %s: %s", notification_id, exc)
            raise RepositoryException(f"Failed to update reminder: {exc}") from exc
        return bool(result.rowcount)
