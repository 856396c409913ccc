# backend/classcredits/tasks/discount_tasks.py
"""Refresh of the denormalized upcoming-discount listing."""

from __future__ import annotations

from celery.utils.log import get_task_logger

from classcredits.database import SessionLocal, with_db_retry
from classcredits.services.discount_summary_service import (
    DiscountSummaryService,
    RebuildSummaryResult,
)
from classcredits.tasks.celery_app import typed_task

logger = get_task_logger(__name__)


@typed_task(name="classcredits.tasks.discount_tasks.rebuild_discount_summary")
def rebuild_discount_summary() -> RebuildSummaryResult:
    db = SessionLocal()
    try:
        service = DiscountSummaryService(db)
        result = with_db_retry("rebuild_discount_summary", service.rebuild)
        if result["failed"]:
            logger.warning("Discount summary rebuilt with %s pricing failure(s)", result["failed"])
        return result
    finally:
        db.close()
