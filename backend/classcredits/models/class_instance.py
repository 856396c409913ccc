# backend/classcredits/models/class_instance.py
"""
Class instance model.

Class templates and venues are managed elsewhere; an instance carries a
snapshot of its template so pricing, capacity and policy can fall back to the
template value whenever the instance does not override it.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import Boolean, CheckConstraint, Column, Index, Integer, String, func
import ulid

from classcredits.database import Base

from .types import JSONType, UTCDateTime


class ClassInstanceStatus(str, Enum):
    """Class instance lifecycle statuses."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class ClassInstance(Base):
    """A single scheduled occurrence of a class."""

    __tablename__ = "class_instances"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    business_id = Column(String(26), nullable=False, index=True)
    venue_id = Column(String(26), nullable=True)
    class_template_id = Column(String(26), nullable=True)

    name = Column(String(255), nullable=True)
    venue_name = Column(String(255), nullable=True)
    start_time = Column(UTCDateTime(), nullable=False)
    end_time = Column(UTCDateTime(), nullable=False)

    # Overrides; None means "use the template snapshot"
    capacity = Column(Integer, nullable=True)
    price = Column(Integer, nullable=True)
    cancellation_window_hours = Column(Integer, nullable=True)
    requires_confirmation = Column(Boolean, nullable=True)

    booking_window_min_hours = Column(Integer, nullable=True)
    booking_window_max_hours = Column(Integer, nullable=True)
    disable_bookings = Column(Boolean, nullable=False, default=False)

    booked_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=ClassInstanceStatus.SCHEDULED.value)
    deleted = Column(Boolean, nullable=False, default=False)

    discount_rules = Column(JSONType, nullable=True)
    template_snapshot = Column(JSONType, nullable=False, default=dict)

    created_at = Column(UTCDateTime(), server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime(), nullable=True)

    __table_args__ = (
        CheckConstraint("booked_count >= 0", name="ck_class_instances_booked_count"),
        CheckConstraint(
            "status IN ('scheduled', 'cancelled', 'completed')",
            name="ck_class_instances_status",
        ),
        Index("ix_class_instances_status_start", "status", "deleted", "start_time"),
        Index("ix_class_instances_status_end", "status", "deleted", "end_time"),
    )

    def _template_value(self, key: str, default: Any = None) -> Any:
        snapshot: Dict[str, Any] = self.template_snapshot or {}
        value = snapshot.get(key)
        return default if value is None else value

    @property
    def effective_name(self) -> str:
        return self.name or self._template_value("name", "")

    @property
    def effective_capacity(self) -> int:
        if self.capacity is not None:
            return int(self.capacity)
        return int(self._template_value("capacity", 0))

    @property
    def effective_price(self) -> int:
        """Price in cents."""
        if self.price is not None:
            return int(self.price)
        return int(self._template_value("price", 0))

    @property
    def effective_cancellation_window_hours(self) -> int:
        if self.cancellation_window_hours is not None:
            return int(self.cancellation_window_hours)
        return int(self._template_value("cancellation_window_hours", 0))

    @property
    def effective_requires_confirmation(self) -> bool:
        if self.requires_confirmation is not None:
            return bool(self.requires_confirmation)
        return bool(self._template_value("requires_confirmation", False))

    @property
    def instance_discount_rules(self) -> List[Dict[str, Any]]:
        return list(self.discount_rules or [])

    @property
    def template_discount_rules(self) -> List[Dict[str, Any]]:
        return list(self._template_value("discount_rules", []))

    def has_started(self, now: Optional[datetime] = None) -> bool:
        current = now or datetime.now(timezone.utc)
        return self.start_time <= current

    def __repr__(self) -> str:
        return (
            f"<ClassInstance {self.id}: {self.effective_name!r} start={self.start_time} "
            f"booked={self.booked_count}/{self.effective_capacity} status={self.status}>"
        )
