# backend/classcredits/repositories/class_instance_repository.py
"""
Class instance repository.

Capacity changes are single conditional UPDATE statements so concurrent
bookings cannot oversell the last spot.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy import and_, case, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classcredits.core.exceptions import RepositoryException
from classcredits.models.class_instance import ClassInstance, ClassInstanceStatus

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ClassInstanceRepository(BaseRepository[ClassInstance]):
    """Repository for class instance capacity and lifecycle updates."""

    def __init__(self, db: Session):
        super().__init__(db, ClassInstance)

    def refresh(self, class_instance_id: str) -> Optional[ClassInstance]:
        """Reload an instance so values written by UPDATE statements are visible."""
        return self.db.get(ClassInstance, class_instance_id, populate_existing=True)

    def try_increment_booked_count(self, class_instance_id: str, capacity: int, now: datetime) -> bool:
        """Take one spot if ``booked_count < capacity``; False when the class is full."""
        try:
            result = self.db.execute(
                update(ClassInstance)
                .where(
                    and_(
                        ClassInstance.id == class_instance_id,
                        ClassInstance.booked_count < capacity,
                    )
                )
                .values(booked_count=ClassInstance.booked_count + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to increment booked count for %s: %s", class_instance_id, exc)
            raise RepositoryException(f"Failed to reserve spot: {exc}") from exc
        return bool(result.rowcount)

    def decrement_booked_count(self, class_instance_id: str, now: datetime) -> None:
        """Release one spot, never going below zero."""
        try:
            self.db.execute(
                update(ClassInstance)
                .where(ClassInstance.id == class_instance_id)
                .values(
                    booked_count=case(
                        (ClassInstance.booked_count > 0, ClassInstance.booked_count - 1),
                        else_=0,
                    ),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to decrement booked count for %s: %s", class_instance_id, exc)
            raise RepositoryException(f"Failed to release spot: {exc}") from exc

    def transition_status(
        self, class_instance_id: str, from_status: str, to_status: str, now: datetime
    ) -> bool:
        """Compare-and-set the instance status."""
        try:
            result = self.db.execute(
                update(ClassInstance)
                .where(
                    and_(
                        ClassInstance.id == class_instance_id,
                        ClassInstance.status == from_status,
                    )
                )
                .values(status=to_status, updated_at=now)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to update status for %s: %s", class_instance_id, exc)
            raise RepositoryException(f"Failed to update class status: {exc}") from exc
        return bool(result.rowcount)

    def find_completion_candidates(self, ended_before: datetime, limit: int = 500) -> List[ClassInstance]:
        """Scheduled, non-deleted instances whose end time is before ``ended_before``."""
        stmt = (
            select(ClassInstance)
            .where(
                and_(
                    ClassInstance.status == ClassInstanceStatus.SCHEDULED.value,
                    ClassInstance.deleted.is_(False),
                    ClassInstance.end_time < ended_before,
                )
            )
            .order_by(ClassInstance.end_time.asc(), ClassInstance.id.asc())
            .limit(limit)
        )
        return self._execute_list(stmt)

    def find_upcoming_scheduled(self, start_after: datetime, start_before: datetime) -> List[ClassInstance]:
        """Scheduled, non-deleted instances starting inside ``(start_after, start_before]``."""
        stmt = (
            select(ClassInstance)
            .where(
                and_(
                    ClassInstance.status == ClassInstanceStatus.SCHEDULED.value,
                    ClassInstance.deleted.is_(False),
                    ClassInstance.start_time > start_after,
                    ClassInstance.start_time <= start_before,
                )
            )
            .order_by(ClassInstance.start_time.asc(), ClassInstance.id.asc())
        )
        return self._execute_list(stmt)
