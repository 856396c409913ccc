# backend/classcredits/models/scheduled_notification.py
"""
Scheduled notification model.

Each row is one future notification (currently class reminders) tied to a
related entity. A partial unique index guarantees at most one pending row per
(entity, type).
"""

from enum import Enum

from sqlalchemy import CheckConstraint, Column, Index, String, Text, func, text
import ulid

from classcredits.database import Base

from .types import UTCDateTime


class ScheduledNotificationStatus(str, Enum):
    """Lifecycle states for a scheduled notification."""

    PENDING = "pending"
    SENT = "sent"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ScheduledNotification(Base):
    """A notification waiting for its ``scheduled_for`` time."""

    __tablename__ = "scheduled_notifications"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    type = Column(String(50), nullable=False)
    scheduled_for = Column(UTCDateTime(), nullable=False)
    status = Column(
        String(20), nullable=False, default=ScheduledNotificationStatus.PENDING.value
    )
    related_entity_type = Column(String(50), nullable=False)
    related_entity_id = Column(String(26), nullable=False)
    recipient_user_id = Column(String(26), nullable=False, index=True)

    sent_at = Column(UTCDateTime(), nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)
    failed_at = Column(UTCDateTime(), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(UTCDateTime(), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'sent', 'cancelled', 'failed')",
            name="ck_scheduled_notifications_status",
        ),
        Index("ix_scheduled_notifications_due", "status", "scheduled_for"),
        Index(
            "ix_scheduled_notifications_entity",
            "related_entity_type",
            "related_entity_id",
        ),
        Index(
            "uq_scheduled_notifications_pending",
            "related_entity_type",
            "related_entity_id",
            "type",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduledNotification {self.id}: {self.type} for "
            f"{self.related_entity_type}/{self.related_entity_id} at {self.scheduled_for} "
            f"status={self.status}>"
        )
