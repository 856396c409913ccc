# backend/classcredits/models/user.py
"""
Minimal user record.

Accounts and authentication live outside this service; bookings only need a
name and contact details for snapshots, plus the business a staff member acts for.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import String, func
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from classcredits.database import Base

from .types import UTCDateTime


class User(Base):
    """Consumer or business staff member."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    # Set for staff acting on behalf of a business
    business_id: Mapped[Optional[str]] = mapped_column(String(26), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<User {self.id} business={self.business_id}>"
