# backend/classcredits/tasks/__init__.py
"""
Celery tasks package for classcredits.

This package contains the periodic sweeps and the notification outbox
dispatcher.
"""

from classcredits.tasks.celery_app import celery_app

__all__ = ["celery_app"]
