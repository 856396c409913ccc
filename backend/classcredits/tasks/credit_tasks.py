# backend/classcredits/tasks/credit_tasks.py
"""
Ledger maintenance tasks.

The nightly sweep recomputes every cached balance from the ledger and repairs
drift. Users are processed in chunks so a large table never holds one long
transaction.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, TypedDict

from celery.utils.log import get_task_logger

from classcredits.core.config import settings
from classcredits.database import SessionLocal, with_db_retry
from classcredits.services.reconciliation_service import ReconciliationService
from classcredits.tasks.celery_app import typed_task

logger = get_task_logger(__name__)


class ReconcileBalancesResults(TypedDict):
    processed: int
    updated: int
    inconsistencies: int
    failed: int
    dry_run: bool
    processed_at: str


@typed_task(name="classcredits.tasks.credit_tasks.reconcile_balances")
def reconcile_balances(
    dry_run: bool = False, batch_size: Optional[int] = None
) -> ReconcileBalancesResults:
    """
    Reconcile the balance cache of every user with ledger history or a cache row.

    Args:
        dry_run: Report drift without writing corrections
        batch_size: Users per chunk, defaults to ``settings.reconcile_batch_size``
    """
    chunk_size = batch_size or settings.reconcile_batch_size
    totals: ReconcileBalancesResults = {
        "processed": 0,
        "updated": 0,
        "inconsistencies": 0,
        "failed": 0,
        "dry_run": dry_run,
        "processed_at": "",
    }

    db = SessionLocal()
    try:
        service = ReconciliationService(db)
        user_ids = with_db_retry("list_reconcile_users", service.list_user_ids)
        for offset in range(0, len(user_ids), chunk_size):
            chunk = user_ids[offset : offset + chunk_size]
            result = service.reconcile_users(chunk, dry_run=dry_run)
            totals["processed"] += result["processed"]
            totals["updated"] += result["updated"]
            totals["inconsistencies"] += result["inconsistencies"]
            totals["failed"] += result["failed"]
    finally:
        db.close()

    totals["processed_at"] = datetime.now(timezone.utc).isoformat()
    if totals["inconsistencies"]:
        logger.warning(
            "Balance reconciliation found %s inconsistent user(s), corrected %s",
            totals["inconsistencies"],
            totals["updated"],
        )
    else:
        logger.info("Balance reconciliation clean for %s user(s)", totals["processed"])
    return totals
