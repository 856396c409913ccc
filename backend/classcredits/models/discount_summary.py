# backend/classcredits/models/discount_summary.py
"""
Denormalized browse table of discounted classes starting soon.

Rebuilt wholesale by a periodic task; never edited in place.
"""

from sqlalchemy import Column, Index, Integer, String
import ulid

from classcredits.database import Base

from .types import UTCDateTime


class ClassDiscountSummary(Base):
    """One discounted, upcoming class instance."""

    __tablename__ = "class_discount_summaries"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    class_instance_id = Column(String(26), nullable=False, unique=True)
    business_id = Column(String(26), nullable=False)
    start_time = Column(UTCDateTime(), nullable=False)
    original_price = Column(Integer, nullable=False)
    final_price = Column(Integer, nullable=False)
    discount_amount = Column(Integer, nullable=False)
    discount_percentage = Column(Integer, nullable=False)
    rule_name = Column(String(255), nullable=True)
    source = Column(String(30), nullable=True)
    refreshed_at = Column(UTCDateTime(), nullable=False)

    __table_args__ = (
        Index("ix_class_discount_summaries_start", "start_time"),
        Index("ix_class_discount_summaries_business", "business_id", "start_time"),
    )
