"""
Booking state machine.

Orchestrates the booking lifecycle on top of the ledger, the pricing
calculator and the reminder sub-ledger:

    awaiting_approval -> pending -> completed
    pending | awaiting_approval -> cancelled_by_consumer | cancelled_by_business
    awaiting_approval -> rejected_by_business
    pending -> no_show

Every status change is a compare-and-set UPDATE, so a transition that loses a
race fails with InvalidStatusTransitionException naming the status it found.
Each operation runs in one transaction together with its ledger entry, cache
update, capacity change, reminder rows and outbox event.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Any, Dict, Iterable, Optional, TypedDict

from sqlalchemy.orm import Session

from classcredits.core.clock import Clock
from classcredits.core.config import settings
from classcredits.core.enums import CancelledBy
from classcredits.core.exceptions import (
    BookingWindowException,
    CheckInWindowException,
    ClassFullException,
    ClassNotBookableException,
    DuplicateActiveBookingException,
    InsufficientCreditsException,
    InvalidStatusTransitionException,
    MaxActiveBookingsExceededException,
    NotFoundException,
    UnauthorizedException,
)
from classcredits.events import (
    BookingApproved,
    BookingCancelled,
    BookingCreated,
    BookingRejected,
    ClassCancelled,
    EventPublisher,
)
from classcredits.models.booking import ACTIVE_BOOKING_STATUSES, Booking, BookingStatus
from classcredits.models.class_instance import ClassInstance, ClassInstanceStatus
from classcredits.monitoring.prometheus_metrics import prometheus_metrics
from classcredits.repositories.factory import RepositoryFactory
from classcredits.schemas.booking import (
    Actor,
    BookClassResult,
    CancelBookingResult,
    ClassCancellationResult,
)

from .base import BaseService
from .credit_service import CreditService
from .pricing_service import FULL_REFUND_PERCENT, PricingService, RefundQuote
from .scheduled_notification_service import ScheduledNotificationService

logger = logging.getLogger(__name__)

FREE_BOOKING_PREFIX = "free_booking_"
_SECONDS_PER_HOUR = 3600
_NO_REFUND = RefundQuote(refund_percentage=0, refund_credits=0, refund_amount_cents=0)


class MarkNoShowsResult(TypedDict):
    processed: int
    marked: int
    skipped: int
    failed: int
    processed_at: str


class BookingService(BaseService):
    """Creates bookings and drives them through their lifecycle."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        pricing_service: Optional[PricingService] = None,
    ):
        super().__init__(db, clock)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.class_instance_repository = RepositoryFactory.create_class_instance_repository(db)
        self.balance_cache_repository = RepositoryFactory.create_balance_cache_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.event_publisher = EventPublisher(RepositoryFactory.create_event_outbox_repository(db))
        self.pricing_service = pricing_service or PricingService()
        self.credit_service = CreditService(db, self.clock)
        self.reminder_service = ScheduledNotificationService(db, self.clock)

    # ------------------------------------------------------------------ helpers

    def get_booking(self, booking_id: str, for_update: bool = False) -> Booking:
        booking = self.booking_repository.get_by_id(
            booking_id, for_update=for_update, populate_existing=True
        )
        if booking is None or booking.deleted:
            raise NotFoundException("Booking not found", details={"booking_id": booking_id})
        return booking

    def _get_instance(self, class_instance_id: str, for_update: bool = False) -> ClassInstance:
        instance = self.class_instance_repository.get_by_id(
            class_instance_id, for_update=for_update, populate_existing=True
        )
        if instance is None or instance.deleted:
            raise NotFoundException(
                "Class instance not found", details={"class_instance_id": class_instance_id}
            )
        return instance

    @staticmethod
    def _authorize(
        booking: Booking, actor: Optional[Actor], role: Optional[CancelledBy] = None
    ) -> None:
        """
        Check that ``actor`` may act on ``booking``.

        ``role`` narrows the check to the booking's consumer or the owning
        business; with no role either party is accepted. No actor means a
        trusted internal caller.
        """
        if actor is None:
            return
        is_owner = actor.user_id == booking.user_id
        is_business = actor.business_id is not None and actor.business_id == booking.business_id
        if role == CancelledBy.CONSUMER:
            allowed = is_owner
        elif role == CancelledBy.BUSINESS:
            allowed = is_business
        else:
            allowed = is_owner or is_business
        if not allowed:
            raise UnauthorizedException(
                details={"booking_id": booking.id, "user_id": actor.user_id}
            )

    def _transition(
        self,
        booking: Booking,
        from_statuses: Iterable[str],
        to_status: BookingStatus,
        action: str,
        **values: Any,
    ) -> None:
        if not self.booking_repository.transition_status(
            booking.id, from_statuses=from_statuses, to_status=to_status, **values
        ):
            current = self.booking_repository.refresh(booking.id)
            current_status = current.status if current is not None else "unknown"
            raise InvalidStatusTransitionException(booking.id, current_status, action)
        prometheus_metrics.record_booking_transition(to_status.value)
        self.logger.info("Booking %s -> %s (%s)", booking.id, to_status.value, action)

    def _ledger_linkage(self, booking: Booking) -> Dict[str, Any]:
        snapshot = booking.class_instance_snapshot or {}
        return {
            "business_id": booking.business_id,
            "venue_id": booking.venue_id,
            "class_template_id": snapshot.get("class_template_id"),
            "class_instance_id": booking.class_instance_id,
            "booking_id": booking.id,
        }

    def _release_booking(
        self,
        booking: Booking,
        *,
        from_statuses: Iterable[str],
        to_status: BookingStatus,
        action: str,
        refund: RefundQuote,
        now: datetime,
        **values: Any,
    ) -> Booking:
        """
        Move an active booking to a terminal status and give its spot back.

        Appends the refund entry when there is one, decrements ``booked_count``
        and cancels pending reminders. Pricing fields are left untouched.
        """
        self._transition(
            booking,
            from_statuses,
            to_status,
            action,
            refund_amount=refund.refund_amount_cents,
            refund_credits=refund.refund_credits,
            updated_at=now,
            **values,
        )
        if refund.refund_credits > 0:
            result = self.credit_service.refund_credits(
                booking.user_id,
                refund.refund_credits,
                use_transaction=False,
                description=(
                    f"Refund for {booking.class_name or 'class'} "
                    f"({refund.refund_percentage}% refund)"
                ),
                **self._ledger_linkage(booking),
            )
            self.booking_repository.set_fields(
                booking.id, refund_transaction_id=result.transaction_id
            )
        self.class_instance_repository.decrement_booked_count(booking.class_instance_id, now)
        self.reminder_service.cancel_by_booking_id(booking.id, use_transaction=False)

        refreshed = self.booking_repository.refresh(booking.id)
        return refreshed if refreshed is not None else booking

    def _ensure_bookable(self, instance: ClassInstance, now: datetime) -> None:
        if instance.status == ClassInstanceStatus.CANCELLED.value:
            raise ClassNotBookableException(instance.id, "This class has been cancelled")
        if instance.status == ClassInstanceStatus.COMPLETED.value:
            raise ClassNotBookableException(instance.id, "This class has already taken place")
        if instance.disable_bookings:
            raise ClassNotBookableException(instance.id, "Bookings are disabled for this class")
        if instance.has_started(now):
            raise ClassNotBookableException(instance.id, "This class has already started")

        hours_until_start = (instance.start_time - now).total_seconds() / _SECONDS_PER_HOUR
        min_hours = instance.booking_window_min_hours
        max_hours = instance.booking_window_max_hours
        if min_hours is not None and hours_until_start < min_hours:
            raise BookingWindowException(
                f"Bookings close {min_hours} hours before class start", hours_until_start
            )
        if max_hours is not None and hours_until_start > max_hours:
            raise BookingWindowException(
                f"Bookings open {max_hours} hours before class start", hours_until_start
            )

    # ---------------------------------------------------------------- creation

    @BaseService.measure_operation("book_class")
    def book_class(
        self, user_id: str, class_instance_id: str, description: Optional[str] = None
    ) -> BookClassResult:
        """
        Book a class instance for a user, paying with credits.

        Calling this again for a class the user already holds an active booking
        on returns that booking and charges nothing.

        Raises:
            NotFoundException: instance missing or deleted
            ClassNotBookableException: cancelled, completed, started or disabled
            BookingWindowException: outside the business's booking window
            ClassFullException: no spots left, including a lost race for the last one
            MaxActiveBookingsExceededException: user is at the active-booking ceiling
            InsufficientCreditsException: balance below the booking's credit cost
        """
        try:
            with self.transaction():
                return self._book(user_id, class_instance_id, description)
        except DuplicateActiveBookingException:
            existing = self.booking_repository.find_active_for_user_and_instance(
                user_id, class_instance_id
            )
            if existing is None:
                raise
            self.logger.info(
                "Concurrent booking for user %s on %s resolved to %s",
                user_id,
                class_instance_id,
                existing.id,
            )
            return BookClassResult(
                booking_id=existing.id,
                transaction_id=existing.credit_transaction_id,
                already_booked=True,
            )

    def _book(
        self, user_id: str, class_instance_id: str, description: Optional[str]
    ) -> BookClassResult:
        now = self.now()
        instance = self._get_instance(class_instance_id)

        existing = self.booking_repository.find_active_for_user_and_instance(
            user_id, class_instance_id
        )
        if existing is not None:
            self.logger.info(
                "User %s already holds booking %s on %s", user_id, existing.id, class_instance_id
            )
            return BookClassResult(
                booking_id=existing.id,
                transaction_id=existing.credit_transaction_id,
                already_booked=True,
            )

        self._ensure_bookable(instance, now)

        capacity = instance.effective_capacity
        if int(instance.booked_count or 0) >= capacity:
            raise ClassFullException(instance.id, capacity)

        limit = settings.max_active_bookings_per_user
        active = self.booking_repository.count_active_for_user(user_id, now)
        if active >= limit:
            raise MaxActiveBookingsExceededException(limit=limit, current=active)

        quote = self.pricing_service.calculate_final_price_from_instance(instance, now)
        credits = quote.credits
        if credits > 0:
            cache = self.balance_cache_repository.get_or_create(user_id, now, for_update=True)
            if int(cache.available_credits) < credits:
                raise InsufficientCreditsException(
                    required=credits, available=int(cache.available_credits)
                )

        if not self.class_instance_repository.try_increment_booked_count(instance.id, capacity, now):
            raise ClassFullException(instance.id, capacity)

        user = self.user_repository.get_by_id(user_id)
        requires_confirmation = instance.effective_requires_confirmation
        status = BookingStatus.AWAITING_APPROVAL if requires_confirmation else BookingStatus.PENDING

        booking = self.booking_repository.create_booking(
            user_id=user_id,
            class_instance_id=instance.id,
            business_id=instance.business_id,
            venue_id=instance.venue_id,
            status=status.value,
            description=description,
            original_price=quote.original_price,
            final_price=quote.final_price,
            credits_used=credits,
            applied_discount=(
                quote.applied_discount.model_dump(mode="json") if quote.applied_discount else None
            ),
            class_start_time=instance.start_time,
            class_instance_snapshot={
                "name": instance.effective_name,
                "start_time": instance.start_time.isoformat(),
                "end_time": instance.end_time.isoformat(),
                "status": instance.status,
                "cancellation_window_hours": instance.effective_cancellation_window_hours,
                "requires_confirmation": requires_confirmation,
                "class_template_id": instance.class_template_id,
            },
            venue_snapshot={"name": instance.venue_name},
            user_snapshot=(
                {"name": user.name, "email": user.email, "phone": user.phone} if user else None
            ),
            booked_at=now,
            updated_at=now,
        )

        if credits > 0:
            spend = self.credit_service.spend_credits(
                user_id,
                credits,
                use_transaction=False,
                description=f"Booking: {instance.effective_name}",
                **self._ledger_linkage(booking),
            )
            transaction_id = spend.transaction_id
        else:
            transaction_id = f"{FREE_BOOKING_PREFIX}{booking.id}"
        booking.credit_transaction_id = transaction_id
        self.booking_repository.flush()

        if status == BookingStatus.PENDING:
            self.reminder_service.schedule_class_reminder(
                booking.id,
                user_id,
                instance.start_time,
                settings.default_reminder_type,
                use_transaction=False,
            )

        self.event_publisher.publish(BookingCreated.from_booking(booking, status=status.value))
        prometheus_metrics.record_booking_transition(status.value)
        self.logger.info(
            "Booked %s for user %s on %s: %d credits (%s)",
            booking.id,
            user_id,
            instance.id,
            credits,
            status.value,
        )
        return BookClassResult(booking_id=booking.id, transaction_id=transaction_id)

    # ------------------------------------------------------------ cancellation

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        booking_id: str,
        cancelled_by: CancelledBy | str = CancelledBy.CONSUMER,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> CancelBookingResult:
        """
        Cancel an active booking and refund according to the cancellation tier.

        The refund derives from the booking's frozen price and the cancellation
        window captured at booking time, never from the live class.
        """
        by = CancelledBy(cancelled_by)
        with self.transaction():
            now = self.now()
            booking = self.get_booking(booking_id, for_update=True)
            self._authorize(booking, actor, by)
            if booking.status not in ACTIVE_BOOKING_STATUSES:
                raise InvalidStatusTransitionException(booking.id, booking.status, "cancel booking")

            percentage = self.pricing_service.refund_percentage(
                booking.class_start_time, booking.cancellation_window_hours, now, by
            )
            refund = self.pricing_service.compute_refund(
                booking.final_price, booking.credits_used, percentage
            )
            target = (
                BookingStatus.CANCELLED_BY_CONSUMER
                if by == CancelledBy.CONSUMER
                else BookingStatus.CANCELLED_BY_BUSINESS
            )
            booking = self._release_booking(
                booking,
                from_statuses=ACTIVE_BOOKING_STATUSES,
                to_status=target,
                action="cancel booking",
                refund=refund,
                now=now,
                cancelled_at=now,
                cancelled_by=by.value,
                cancelled_by_user_id=actor.user_id if actor else None,
                cancel_reason=reason,
            )
            self.event_publisher.publish(
                BookingCancelled.from_booking(
                    booking,
                    cancelled_by=by.value,
                    reason=reason,
                    refund_percentage=refund.refund_percentage,
                    refund_credits=refund.refund_credits,
                    refund_amount_cents=refund.refund_amount_cents,
                )
            )

        return CancelBookingResult(
            success=True,
            booking_id=booking.id,
            status=target.value,
            refund_percentage=refund.refund_percentage,
            refund_credits=refund.refund_credits,
            refund_amount_cents=refund.refund_amount_cents,
        )

    # ------------------------------------------------------- business approval

    @BaseService.measure_operation("approve_booking")
    def approve_booking(self, booking_id: str, actor: Optional[Actor] = None) -> Booking:
        """Confirm a booking awaiting approval and arm its reminder."""
        with self.transaction():
            now = self.now()
            booking = self.get_booking(booking_id, for_update=True)
            self._authorize(booking, actor, CancelledBy.BUSINESS)
            approved_by = actor.user_id if actor else None
            self._transition(
                booking,
                [BookingStatus.AWAITING_APPROVAL.value],
                BookingStatus.PENDING,
                "approve booking",
                approved_at=now,
                approved_by=approved_by,
                updated_at=now,
            )
            self.reminder_service.schedule_class_reminder(
                booking.id,
                booking.user_id,
                booking.class_start_time,
                settings.default_reminder_type,
                use_transaction=False,
            )
            booking = self.booking_repository.refresh(booking.id) or booking
            self.event_publisher.publish(
                BookingApproved.from_booking(booking, approved_by=approved_by)
            )
        return booking

    @BaseService.measure_operation("reject_booking")
    def reject_booking(
        self, booking_id: str, reason: Optional[str] = None, actor: Optional[Actor] = None
    ) -> Booking:
        """Decline a booking awaiting approval; the customer is refunded in full."""
        with self.transaction():
            now = self.now()
            booking = self.get_booking(booking_id, for_update=True)
            self._authorize(booking, actor, CancelledBy.BUSINESS)
            refund = self.pricing_service.compute_refund(
                booking.final_price, booking.credits_used, FULL_REFUND_PERCENT
            )
            booking = self._release_booking(
                booking,
                from_statuses=[BookingStatus.AWAITING_APPROVAL.value],
                to_status=BookingStatus.REJECTED_BY_BUSINESS,
                action="reject booking",
                refund=refund,
                now=now,
                rejected_at=now,
                rejected_by=actor.user_id if actor else None,
                reject_reason=reason,
            )
            self.event_publisher.publish(
                BookingRejected.from_booking(
                    booking,
                    reason=reason,
                    refund_credits=refund.refund_credits,
                    refund_amount_cents=refund.refund_amount_cents,
                )
            )
        return booking

    # -------------------------------------------------------------- attendance

    @BaseService.measure_operation("complete_booking")
    def complete_booking(self, booking_id: str, actor: Optional[Actor] = None) -> Booking:
        """
        Check a customer in.

        Allowed from ``check_in_opens_minutes`` before class start until
        ``check_in_closes_hours`` after it.
        """
        with self.transaction():
            now = self.now()
            booking = self.get_booking(booking_id, for_update=True)
            self._authorize(booking, actor)
            if booking.status != BookingStatus.PENDING.value:
                raise InvalidStatusTransitionException(booking.id, booking.status, "complete booking")

            start = booking.class_start_time
            opens_at = start - timedelta(minutes=settings.check_in_opens_minutes)
            closes_at = start + timedelta(hours=settings.check_in_closes_hours)
            if now < opens_at:
                raise CheckInWindowException(
                    booking.id,
                    f"Check-in opens {settings.check_in_opens_minutes} minutes before class start",
                )
            if now > closes_at:
                raise CheckInWindowException(
                    booking.id,
                    f"Check-in closed {settings.check_in_closes_hours} hours after class start",
                )

            self._transition(
                booking,
                [BookingStatus.PENDING.value],
                BookingStatus.COMPLETED,
                "complete booking",
                completed_at=now,
                updated_at=now,
            )
            self.reminder_service.cancel_by_booking_id(booking.id, use_transaction=False)
            booking = self.booking_repository.refresh(booking.id) or booking
        return booking

    @BaseService.measure_operation("mark_no_shows")
    def mark_no_shows(self, now: Optional[datetime] = None, limit: int = 500) -> MarkNoShowsResult:
        """
        Mark pending bookings as no-show once their class is past the grace period.

        No refund is given and the spot is released. Each booking is handled in
        its own transaction; failures are logged and the sweep continues.
        """
        current = now or self.now()
        cutoff = current - timedelta(hours=settings.no_show_grace_hours)
        candidates = self.booking_repository.find_no_show_candidates(cutoff, limit=limit)
        marked = skipped = failed = 0

        for booking in candidates:
            booking_id = booking.id
            try:
                with self.transaction():
                    self._release_booking(
                        booking,
                        from_statuses=[BookingStatus.PENDING.value],
                        to_status=BookingStatus.NO_SHOW,
                        action="mark no-show",
                        refund=_NO_REFUND,
                        now=current,
                        no_show_at=current,
                    )
                marked += 1
                prometheus_metrics.record_batch_item("mark_no_shows", "processed")
            except InvalidStatusTransitionException as exc:
                skipped += 1
                self.logger.info("Skipping no-show for booking %s: %s", booking_id, exc.message)
            except Exception as exc:
                failed += 1
                self.logger.error("Failed to mark booking %s as no-show: %s", booking_id, exc)
                prometheus_metrics.record_batch_item("mark_no_shows", "failed")

        self.logger.info(
            "No-show sweep: %d candidates, %d marked, %d skipped, %d failed",
            len(candidates),
            marked,
            skipped,
            failed,
        )
        return {
            "processed": len(candidates),
            "marked": marked,
            "skipped": skipped,
            "failed": failed,
            "processed_at": current.isoformat(),
        }

    # ------------------------------------------------------ class cancellation

    @BaseService.measure_operation("cancel_class")
    def cancel_class(
        self,
        class_instance_id: str,
        reason: Optional[str] = None,
        actor: Optional[Actor] = None,
    ) -> ClassCancellationResult:
        """
        Cancel a whole class on behalf of its business.

        Every active booking is cancelled by the business with a full refund and
        each affected customer gets a ``class.cancelled`` event.
        """
        with self.transaction():
            now = self.now()
            instance = self._get_instance(class_instance_id, for_update=True)
            if actor is not None and actor.business_id != instance.business_id:
                raise UnauthorizedException(
                    details={"class_instance_id": instance.id, "user_id": actor.user_id}
                )
            if not self.class_instance_repository.transition_status(
                instance.id,
                ClassInstanceStatus.SCHEDULED.value,
                ClassInstanceStatus.CANCELLED.value,
                now,
            ):
                current = self.class_instance_repository.refresh(instance.id)
                raise InvalidStatusTransitionException(
                    instance.id, current.status if current else instance.status, "cancel class"
                )

            cancelled_reminders = self.reminder_service.cancel_by_class_instance_id(
                instance.id, use_transaction=False
            )

            cancelled = refunded = 0
            for booking in self.booking_repository.find_active_for_instance(instance.id):
                refund = self.pricing_service.compute_refund(
                    booking.final_price, booking.credits_used, FULL_REFUND_PERCENT
                )
                booking = self._release_booking(
                    booking,
                    from_statuses=ACTIVE_BOOKING_STATUSES,
                    to_status=BookingStatus.CANCELLED_BY_BUSINESS,
                    action="cancel booking",
                    refund=refund,
                    now=now,
                    cancelled_at=now,
                    cancelled_by=CancelledBy.BUSINESS.value,
                    cancelled_by_user_id=actor.user_id if actor else None,
                    cancel_reason=reason,
                )
                self.event_publisher.publish(
                    ClassCancelled.from_booking(
                        booking, reason=reason, refund_credits=refund.refund_credits
                    )
                )
                cancelled += 1
                refunded += refund.refund_credits

        self.logger.info(
            "Cancelled class %s: %d bookings, %d credits refunded",
            class_instance_id,
            cancelled,
            refunded,
        )
        return ClassCancellationResult(
            class_instance_id=class_instance_id,
            cancelled_bookings=cancelled,
            refunded_credits=refunded,
            cancelled_reminders=cancelled_reminders,
        )
