# backend/classcredits/repositories/booking_repository.py
"""
Booking Repository

Implements all data access operations for booking management. Status changes
are compare-and-set UPDATE statements: a transition only succeeds when the row
is still in one of the expected source states, so concurrent transitions on
the same booking resolve to exactly one winner.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from classcredits.core.exceptions import DuplicateActiveBookingException, RepositoryException
from classcredits.models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    # Creation

    def create_booking(self, **fields: Any) -> Booking:
        """
        Insert a booking row.

        Raises:
            DuplicateActiveBookingException: another active booking for the same
                user and class won the unique index; the session is rolled back.
        """
        try:
            booking = Booking(**fields)
            self.db.add(booking)
            self.db.flush()
            return booking
        except IntegrityError as exc:
            self.logger.warning(
                "Active booking conflict for user=%s instance=%s: %s",
                fields.get("user_id"),
                fields.get("class_instance_id"),
                exc.orig,
            )
            self.db.rollback()
            raise DuplicateActiveBookingException(
                str(fields.get("user_id")), str(fields.get("class_instance_id"))
            ) from exc
        except SQLAlchemyError as exc:
            self.logger.error("Error creating booking: %s", exc)
            self.db.rollback()
            raise RepositoryException(f"Failed to create booking: {exc}") from exc

    # Lookups

    def refresh(self, booking_id: str) -> Optional[Booking]:
        """Reload a booking so values written by UPDATE statements are visible."""
        return self.db.get(Booking, booking_id, populate_existing=True)

    def find_active_for_user_and_instance(
        self, user_id: str, class_instance_id: str
    ) -> Optional[Booking]:
        stmt = (
            select(Booking)
            .where(
                and_(
                    Booking.user_id == user_id,
                    Booking.class_instance_id == class_instance_id,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    Booking.deleted.is_(False),
                )
            )
            .order_by(Booking.booked_at.desc())
            .limit(1)
        )
        results = self._execute_list(stmt)
        return results[0] if results else None

    def count_active_for_user(self, user_id: str, now: datetime) -> int:
        """Active bookings whose class has not started yet."""
        stmt = select(Booking.id).where(
            and_(
                Booking.user_id == user_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                Booking.deleted.is_(False),
                Booking.class_start_time > now,
            )
        )
        return len(self.db.execute(stmt).all())

    def find_active_for_instance(self, class_instance_id: str) -> List[Booking]:
        stmt = (
            select(Booking)
            .where(
                and_(
                    Booking.class_instance_id == class_instance_id,
                    Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    Booking.deleted.is_(False),
                )
            )
            .order_by(Booking.booked_at.asc(), Booking.id.asc())
        )
        return self._execute_list(stmt)

    def list_ids_for_instance(self, class_instance_id: str) -> List[str]:
        """Ids of every non-deleted booking on the instance, whatever the status."""
        try:
            rows = self.db.execute(
                select(Booking.id).where(
                    and_(
                        Booking.class_instance_id == class_instance_id,
                        Booking.deleted.is_(False),
                    )
                )
            )
            return [row[0] for row in rows]
        except SQLAlchemyError as exc:
            self.logger.error("Failed to list bookings for %s: %s", class_instance_id, exc)
            raise RepositoryException("Failed to list bookings for class") from exc

    def find_no_show_candidates(self, started_before: datetime, limit: int = 500) -> List[Booking]:
        """Pending, non-deleted bookings whose class started before ``started_before``."""
        stmt = (
            select(Booking)
            .where(
                and_(
                    Booking.status == BookingStatus.PENDING.value,
                    Booking.deleted.is_(False),
                    Booking.class_start_time < started_before,
                )
            )
            .order_by(Booking.class_start_time.asc(), Booking.id.asc())
            .limit(limit)
        )
        return self._execute_list(stmt)

    def find_for_business_booked_between(
        self, business_id: str, start: datetime, end: datetime
    ) -> List[Booking]:
        """Non-deleted bookings of a business with ``start <= booked_at < end``."""
        stmt = (
            select(Booking)
            .where(
                and_(
                    Booking.business_id == business_id,
                    Booking.deleted.is_(False),
                    Booking.booked_at >= start,
                    Booking.booked_at < end,
                )
            )
            .order_by(Booking.booked_at.asc())
        )
        return self._execute_list(stmt)

    # Transitions

    def transition_status(
        self,
        booking_id: str,
        *,
        from_statuses: Iterable[str],
        to_status: BookingStatus,
        **values: Any,
    ) -> bool:
        """
        Move a booking to ``to_status`` only if it is currently in ``from_statuses``.

        Returns:
            True if the row was updated, False if another transition got there first
        """
        allowed = [getattr(s, "value", s) for s in from_statuses]
        try:
            result = self.db.execute(
                update(Booking)
                .where(
                    and_(
                        Booking.id == booking_id,
                        Booking.status.in_(allowed),
                        Booking.deleted.is_(False),
                    )
                )
                .values(status=to_status.value, **values)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to transition booking %s: %s", booking_id, exc)
            raise RepositoryException(f"Failed to update booking status: {exc}") from exc
        return bool(result.rowcount)

    def set_fields(self, booking_id: str, **values: Any) -> None:
        """Write non-status bookkeeping columns (refund linkage)."""
        try:
            self.db.execute(
                update(Booking)
                .where(Booking.id == booking_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to update booking %s: %s", booking_id, exc)
            raise RepositoryException(f"Failed to update booking: {exc}") from exc
