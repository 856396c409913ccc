"""
Customer-facing message templates for booking outbox events.

Placeholders are filled from the event payload written by
``classcredits.events.booking_events``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


class NotificationRenderError(ValueError):
    """Raised when an event cannot be turned into a message."""


@dataclass(frozen=True)
class NotificationTemplate:
    type: str
    title: str
    body_template: str
    email_subject_template: str


@dataclass(frozen=True)
class RenderedNotification:
    event_type: str
    recipient: Optional[str]
    subject: str
    body: str


BOOKING_CREATED = NotificationTemplate(
    type="booking.created",
    title="Booking Confirmed",
    body_template="{class_name} at {venue_name} on {start_time}. {credits} credits charged.",
    email_subject_template="Booking Confirmed: {class_name}",
)

BOOKING_CANCELLED = NotificationTemplate(
    type="booking.cancelled",
    title="Booking Cancelled",
    body_template=(
        "Your booking for {class_name} on {start_time} was cancelled. "
        "{refund_credits} credits refunded."
    ),
    email_subject_template="Booking Cancelled: {class_name}",
)

BOOKING_APPROVED = NotificationTemplate(
    type="booking.approved",
    title="Booking Approved",
    body_template="Your request for {class_name} on {start_time} was approved. See you at {venue_name}.",
    email_subject_template="Booking Approved: {class_name}",
)

BOOKING_REJECTED = NotificationTemplate(
    type="booking.rejected",
    title="Booking Rejected",
    body_template=(
        "Your request for {class_name} on {start_time} was declined. "
        "{refund_credits} credits refunded."
    ),
    email_subject_template="Booking Rejected: {class_name}",
)

CLASS_CANCELLED = NotificationTemplate(
    type="class.cancelled",
    title="Class Cancelled",
    body_template=(
        "{class_name} on {start_time} has been cancelled by the studio. "
        "{refund_credits} credits refunded."
    ),
    email_subject_template="Class Cancelled: {class_name}",
)

BOOKING_REMINDER = NotificationTemplate(
    type="booking.reminder",
    title="Class Starting Soon",
    body_template="{class_name} at {venue_name} starts at {start_time}.",
    email_subject_template="Reminder: {class_name} starts soon",
)

TEMPLATES: Dict[str, NotificationTemplate] = {
    template.type: template
    for template in (
        BOOKING_CREATED,
        BOOKING_CANCELLED,
        BOOKING_APPROVED,
        BOOKING_REJECTED,
        CLASS_CANCELLED,
        BOOKING_REMINDER,
    )
}


def _format_start(value: Any) -> str:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            return value
    if isinstance(value, datetime):
        return value.strftime("%a %d %b %Y %H:%M UTC")
    return str(value)


def render_notification(event_type: str, payload: Dict[str, Any]) -> RenderedNotification:
    template = TEMPLATES.get(event_type)
    if template is None:
        raise NotificationRenderError(f"No template for event type {event_type}")

    context = dict(payload)
    context["venue_name"] = payload.get("venue_name") or "the studio"
    if "start_time" in payload:
        context["start_time"] = _format_start(payload["start_time"])
    try:
        subject = template.email_subject_template.format(**context)
        body = template.body_template.format(**context)
    except KeyError as exc:
        raise NotificationRenderError(
            f"{event_type} payload is missing {exc.args[0]!r}"
        ) from exc

    return RenderedNotification(
        event_type=event_type,
        recipient=payload.get("customer_email"),
        subject=subject,
        body=body,
    )
