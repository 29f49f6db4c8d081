"""Recurring invoice generation task: runs the batch for every due template."""

from __future__ import annotations

import logging

from backend.app.workers.celery_app import celery

logger = logging.getLogger(__name__)


@celery.task(name="backend.app.workers.tasks.recurring.generate_due_invoices")
def generate_due_invoices() -> dict:
    """Generate invoices for all templates due today (or earlier)."""
    from backend.app.core.exceptions import TaskAlreadyRunning
    from backend.app.services.scheduled_tasks import scheduled_task_service

    try:
        result = scheduled_task_service.generate_due_recurring_invoices()
    except TaskAlreadyRunning:
        logger.info("Skipping recurring invoice run: another run holds the lease")
        return {"status": "skipped"}
    return result.model_dump(mode="json")
