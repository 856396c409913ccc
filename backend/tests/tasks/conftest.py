"""Route every task session to the per-test SQLite engine."""

import pytest

from classcredits.services.notification_provider import NotificationProvider
from classcredits.tasks import booking_tasks, credit_tasks, discount_tasks, notification_tasks


@pytest.fixture(autouse=True)
def task_sessions(monkeypatch, session_factory):
    for module in (booking_tasks, credit_tasks, discount_tasks, notification_tasks):
        monkeypatch.setattr(module, "SessionLocal", session_factory)
    monkeypatch.setattr(
        notification_tasks,
        "NotificationProvider",
        lambda: NotificationProvider(session_factory=session_factory),
    )
    return session_factory
