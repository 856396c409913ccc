"""Class instance lifecycle sweeps."""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Optional, TypedDict

from sqlalchemy.orm import Session

from classcredits.core.clock import Clock
from classcredits.core.config import settings
from classcredits.models.class_instance import ClassInstanceStatus
from classcredits.monitoring.prometheus_metrics import prometheus_metrics
from classcredits.repositories.factory import RepositoryFactory

from .base import BaseService

logger = logging.getLogger(__name__)


class MarkClassesCompletedResult(TypedDict):
    processed: int
    marked: int
    skipped: int
    failed: int
    processed_at: str


class ClassInstanceService(BaseService):
    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.class_instance_repository = RepositoryFactory.create_class_instance_repository(db)

    @BaseService.measure_operation("mark_classes_completed")
    def mark_classes_completed(
        self, now: Optional[datetime] = None, limit: int = 500
    ) -> MarkClassesCompletedResult:
        """
        Complete scheduled classes that ended more than the grace period ago.

        Booking rows are left alone; attendance is settled by check-in and the
        no-show sweep.
        """
        current = now or self.now()
        cutoff = current - timedelta(hours=settings.class_completion_grace_hours)
        candidates = self.class_instance_repository.find_completion_candidates(cutoff, limit=limit)
        marked = skipped = failed = 0

        for instance in candidates:
            instance_id = instance.id
            try:
                with self.transaction():
                    updated = self.class_instance_repository.transition_status(
                        instance_id,
                        ClassInstanceStatus.SCHEDULED.value,
                        ClassInstanceStatus.COMPLETED.value,
                        current,
                    )
                if updated:
                    marked += 1
                    prometheus_metrics.record_batch_item("mark_classes_completed", "processed")
                else:
                    skipped += 1
            except Exception as exc:
                failed += 1
                self.logger.error("Failed to complete class instance %s: %s", instance_id, exc)
                prometheus_metrics.record_batch_item("mark_classes_completed", "failed")

        self.logger.info(
            "Completion sweep: %d candidates, %d completed, %d skipped, %d failed",
            len(candidates),
            marked,
            skipped,
            failed,
        )
        return {
            "processed": len(candidates),
            "marked": marked,
            "skipped": skipped,
            "failed": failed,
            "processed_at": current.isoformat(),
        }
