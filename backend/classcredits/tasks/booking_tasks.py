# backend/classcredits/tasks/booking_tasks.py
"""
Periodic booking lifecycle sweeps.

Each sweep opens its own session and settles items one transaction at a time,
so a single bad row never blocks the rest of the batch.
"""

from __future__ import annotations

from celery.utils.log import get_task_logger

from classcredits.database import SessionLocal, with_db_retry
from classcredits.services.booking_service import BookingService, MarkNoShowsResult
from classcredits.services.class_instance_service import (
    ClassInstanceService,
    MarkClassesCompletedResult,
)
from classcredits.tasks.celery_app import typed_task

logger = get_task_logger(__name__)


@typed_task(name="classcredits.tasks.booking_tasks.mark_no_shows")
def mark_no_shows(limit: int = 500) -> MarkNoShowsResult:
    """Move pending bookings whose class ended its grace period to no_show."""
    db = SessionLocal()
    try:
        service = BookingService(db)
        result = with_db_retry("mark_no_shows", lambda: service.mark_no_shows(limit=limit))
        logger.info(
            "No-show sweep: marked=%s skipped=%s failed=%s",
            result["marked"],
            result["skipped"],
            result["failed"],
        )
        return result
    finally:
        db.close()


@typed_task(name="classcredits.tasks.booking_tasks.mark_classes_completed")
def mark_classes_completed(limit: int = 500) -> MarkClassesCompletedResult:
    db = SessionLocal()
    try:
        service = ClassInstanceService(db)
        return with_db_retry(
            "mark_classes_completed", lambda: service.mark_classes_completed(limit=limit)
        )
    finally:
        db.close()
