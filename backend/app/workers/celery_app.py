"""Celery application instance.

Start the worker::

    celery -A backend.app.workers.celery_app worker --loglevel=info
    celery -A backend.app.workers.celery_app beat --loglevel=info
"""

from __future__ import annotations

from celery import Celery

from backend.app.core.config import settings
from backend.app.workers.schedule import parse_cron_expression

celery = Celery(
    "gst_invoicing",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.CRON_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

# Auto-discover tasks in workers/tasks/*.py
celery.autodiscover_tasks(["backend.app.workers.tasks"])

# Beat schedule: the only periodic job; runs in CRON_TIMEZONE
celery.conf.beat_schedule = {
    "generate-recurring-invoices": {
        "task": "backend.app.workers.tasks.recurring.generate_due_invoices",
        "schedule": parse_cron_expression(settings.RECURRING_CRON_SCHEDULE),
    },
}
