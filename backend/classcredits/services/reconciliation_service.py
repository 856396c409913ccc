"""
Balance cache reconciliation.

The ledger is the source of truth; ``user_balance_cache`` is a materialized
view of it. Reconciliation recomputes both cached figures from the ledger,
reports the drift and, unless running dry, writes the corrected values.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Iterable, List, Optional, TypedDict

from sqlalchemy.orm import Session

from classcredits.core.clock import Clock
from classcredits.monitoring.prometheus_metrics import prometheus_metrics
from classcredits.repositories.factory import RepositoryFactory
from classcredits.schemas.credit import BalanceSnapshot, ReconciliationResult

from .base import BaseService

logger = logging.getLogger(__name__)


class ReconcileUsersResult(TypedDict):
    processed: int
    updated: int
    inconsistencies: int
    failed: int
    processed_at: str


class ReconciliationService(BaseService):
    """Keeps cached balances equal to the ledger folds."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.credit_repository = RepositoryFactory.create_credit_repository(db)
        self.balance_cache_repository = RepositoryFactory.create_balance_cache_repository(db)

    @BaseService.measure_operation("get_balance")
    def get_balance(self, user_id: str, reconcile: bool = False) -> BalanceSnapshot:
        """
        Read a user's balance.

        With ``reconcile`` the cache is corrected first; otherwise the cached
        (possibly stale) values are returned, or zeros when no row exists.
        """
        if reconcile:
            self.reconcile_user(user_id)

        cache = self.balance_cache_repository.get_for_user(user_id)
        if cache is None:
            return BalanceSnapshot(user_id=user_id, available_credits=0, lifetime_credits=0)
        return BalanceSnapshot(
            user_id=user_id,
            available_credits=cache.available_credits,
            lifetime_credits=cache.lifetime_credits,
            last_updated=cache.last_updated,
        )

    @BaseService.measure_operation("reconcile_user")
    def reconcile_user(
        self, user_id: str, dry_run: bool = False, force_update: bool = False
    ) -> ReconciliationResult:
        """
        Recompute a user's balance from the ledger and repair the cache.

        Args:
            user_id: User to reconcile
            dry_run: Report drift without writing anything
            force_update: Rewrite ``last_updated`` even when values already match

        Returns:
            ReconciliationResult with deltas as computed minus cached
        """
        now = self.now()

        def _reconcile() -> ReconciliationResult:
            # Cache row lock comes before the ledger fold
            if dry_run:
                cache = self.balance_cache_repository.get_for_user(user_id)
            else:
                cache = self.balance_cache_repository.get_or_create(user_id, now, for_update=True)

            computed_available = self.credit_repository.sum_for_user(user_id, as_of=now)
            computed_lifetime = self.credit_repository.lifetime_for_user(user_id, as_of=now)

            cached_available = int(cache.available_credits) if cache else 0
            cached_lifetime = int(cache.lifetime_credits) if cache else 0
            delta_available = computed_available - cached_available
            delta_lifetime = computed_lifetime - cached_lifetime
            inconsistency_count = int(delta_available != 0) + int(delta_lifetime != 0)

            was_updated = False
            if not dry_run and cache is not None and (inconsistency_count or force_update):
                self.balance_cache_repository.overwrite(
                    cache, available=computed_available, lifetime=computed_lifetime, now=now
                )
                was_updated = inconsistency_count > 0

            if inconsistency_count:
                self.logger.warning(
                    "Balance drift for user %s: available %+d, lifetime %+d%s",
                    user_id,
                    delta_available,
                    delta_lifetime,
                    " (dry run)" if dry_run else "",
                )
                outcome = "drift_detected" if dry_run else "corrected"
            else:
                outcome = "consistent"
            prometheus_metrics.record_reconciliation(outcome, drift=delta_available)

            return ReconciliationResult(
                user_id=user_id,
                available_credits=computed_available,
                lifetime_credits=computed_lifetime,
                was_updated=was_updated,
                delta_available_credits=delta_available,
                delta_lifetime_credits=delta_lifetime,
                inconsistency_count=inconsistency_count,
                dry_run=dry_run,
            )

        if dry_run:
            return _reconcile()
        with self.transaction():
            return _reconcile()

    def list_user_ids(self) -> List[str]:
        ids = set(self.credit_repository.distinct_user_ids())
        ids.update(self.balance_cache_repository.all_user_ids())
        return sorted(ids)

    @BaseService.measure_operation("reconcile_users")
    def reconcile_users(
        self, user_ids: Optional[Iterable[str]] = None, dry_run: bool = False
    ) -> ReconcileUsersResult:
        """Reconcile many users; one failing user does not stop the sweep."""
        targets = list(user_ids) if user_ids is not None else self.list_user_ids()
        processed = updated = inconsistencies = failed = 0

        for user_id in targets:
            try:
                result = self.reconcile_user(user_id, dry_run=dry_run)
            except Exception as exc:
                failed += 1
                self.logger.error("Failed to reconcile user %s: %s", user_id, exc)
                prometheus_metrics.record_batch_item("reconcile_balances", "failed")
                continue
            processed += 1
            if result.was_updated:
                updated += 1
            if result.inconsistency_count:
                inconsistencies += 1
            prometheus_metrics.record_batch_item("reconcile_balances", "processed")

        finished: datetime = self.now()
        self.logger.info(
            "Reconciled %d users (%d updated, %d inconsistent, %d failed)",
            processed,
            updated,
            inconsistencies,
            failed,
        )
        return {
            "processed": processed,
            "updated": updated,
            "inconsistencies": inconsistencies,
            "failed": failed,
            "processed_at": finished.isoformat(),
        }
