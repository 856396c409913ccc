# backend/classcredits/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for classcredits.

Background sweeps operate on index-scoped slices and are idempotent for a
given clock value, so overlapping runs are harmless.
"""

from datetime import timedelta
from typing import Any, Dict

from celery.schedules import crontab

CELERYBEAT_SCHEDULE: Dict[str, Dict[str, Any]] = {
    # Pending bookings past start + grace become no-shows
    "mark-no-shows": {
        "task": "classcredits.tasks.booking_tasks.mark_no_shows",
        "schedule": crontab(minute=5),
        "options": {"priority": 6},
    },
    "mark-classes-completed": {
        "task": "classcredits.tasks.booking_tasks.mark_classes_completed",
        "schedule": crontab(minute=15),
        "options": {"priority": 5},
    },
    "rebuild-discount-summary": {
        "task": "classcredits.tasks.discount_tasks.rebuild_discount_summary",
        "schedule": crontab(minute="*/5"),
        "options": {"priority": 4},
    },
    # Ledger vs cache drift repair
    "reconcile-balances": {
        "task": "classcredits.tasks.credit_tasks.reconcile_balances",
        "schedule": crontab(hour=3, minute=30),
        "options": {"queue": "maintenance", "priority": 2},
    },
    "dispatch-due-reminders": {
        "task": "classcredits.tasks.notification_tasks.dispatch_due_reminders",
        "schedule": crontab(minute="*"),
        "options": {"queue": "notifications", "priority": 8},
    },
    "dispatch-notification-outbox": {
        "task": "outbox.dispatch_pending",
        "schedule": timedelta(seconds=30),
        "options": {"queue": "notifications", "priority": 8},
    },
}


def get_beat_schedule(environment: str = "production") -> Dict[str, Dict[str, Any]]:
    """
    Return the beat schedule for an environment.

    Outside production the drift repair runs hourly so inconsistencies surface sooner.
    """
    schedule = {name: dict(entry) for name, entry in CELERYBEAT_SCHEDULE.items()}
    if environment != "production":
        schedule["reconcile-balances"]["schedule"] = crontab(minute=45)
    return schedule
