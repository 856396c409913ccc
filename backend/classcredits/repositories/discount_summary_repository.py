# backend/classcredits/repositories/discount_summary_repository.py
"""Repository for the discounted-classes browse table."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classcredits.core.exceptions import RepositoryException
from classcredits.models.discount_summary import ClassDiscountSummary

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class DiscountSummaryRepository(BaseRepository[ClassDiscountSummary]):
    def __init__(self, db: Session):
        super().__init__(db, ClassDiscountSummary)

    def replace_all(self, rows: List[Dict[str, Any]]) -> int:
        """Clear the table and insert ``rows``; returns the number inserted."""
        try:
            self.db.execute(delete(ClassDiscountSummary))
            for row in rows:
                self.db.add(ClassDiscountSummary(**row))
            self.db.flush()
        except SQLAlchemyError as exc:
            self.logger.error("Failed to replace discount summaries: %s", exc)
            raise RepositoryException(f"Failed to replace discount summaries: {exc}") from exc
        return len(rows)

    def list_all(self) -> List[ClassDiscountSummary]:
        stmt = select(ClassDiscountSummary).order_by(
            ClassDiscountSummary.start_time.asc(), ClassDiscountSummary.id.asc()
        )
        return self._execute_list(stmt)
