"""
Discount summary rebuild.

Prices every scheduled class starting within the horizon exactly as a booking
made now would be priced, and replaces the browse table with the discounted ones.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Any, Dict, List, Optional, TypedDict

from sqlalchemy.orm import Session

from classcredits.core.clock import Clock
from classcredits.core.config import settings
from classcredits.monitoring.prometheus_metrics import prometheus_metrics
from classcredits.repositories.factory import RepositoryFactory

from .base import BaseService
from .pricing_service import PricingService

logger = logging.getLogger(__name__)


class RebuildSummaryResult(TypedDict):
    processed: int
    updated: int
    skipped: int
    failed: int
    processed_at: str


class DiscountSummaryService(BaseService):
    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        pricing_service: Optional[PricingService] = None,
    ):
        super().__init__(db, clock)
        self.class_instance_repository = RepositoryFactory.create_class_instance_repository(db)
        self.summary_repository = RepositoryFactory.create_discount_summary_repository(db)
        self.pricing_service = pricing_service or PricingService()

    @BaseService.measure_operation("rebuild_discount_summary")
    def rebuild(self, now: Optional[datetime] = None) -> RebuildSummaryResult:
        """Clear and fully replace ``class_discount_summaries``."""
        current = now or self.now()
        horizon = current + timedelta(hours=settings.discount_summary_horizon_hours)
        instances = self.class_instance_repository.find_upcoming_scheduled(current, horizon)

        rows: List[Dict[str, Any]] = []
        skipped = failed = 0
        for instance in instances:
            try:
                quote = self.pricing_service.calculate_final_price_from_instance(instance, current)
            except Exception as exc:
                failed += 1
                self.logger.error("Failed to price class instance %s: %s", instance.id, exc)
                prometheus_metrics.record_batch_item("rebuild_discount_summary", "failed")
                continue
            if quote.discount_amount <= 0 or quote.applied_discount is None:
                skipped += 1
                continue
            rows.append(
                {
                    "class_instance_id": instance.id,
                    "business_id": instance.business_id,
                    "start_time": instance.start_time,
                    "original_price": quote.original_price,
                    "final_price": quote.final_price,
                    "discount_amount": quote.discount_amount,
                    "discount_percentage": quote.discount_percentage,
                    "rule_name": quote.applied_discount.rule_name,
                    "source": quote.applied_discount.source.value,
                    "refreshed_at": current,
                }
            )

        with self.transaction():
            written = self.summary_repository.replace_all(rows)

        self.logger.info(
            "Discount summary rebuilt: %d instances scanned, %d discounted, %d failed",
            len(instances),
            written,
            failed,
        )
        return {
            "processed": len(instances),
            "updated": written,
            "skipped": skipped,
            "failed": failed,
            "processed_at": current.isoformat(),
        }
