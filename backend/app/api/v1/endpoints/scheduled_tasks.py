"""Trigger and status endpoints for the recurring invoice batch.

Meant for an external scheduler (Celery beat, a hosted cron, ...).  The
response code tells the caller how the run went: 200 all generated (or
nothing was due), 207 partial success, 409 another run in progress, 500
nothing could be generated.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from backend.app.api.deps import get_task_service, require_cron_secret
from backend.app.core.config import settings
from backend.app.core.exceptions import TaskAlreadyRunning
from backend.app.schemas.recurring import TaskExecutionResult
from backend.app.services.scheduled_tasks import ScheduledTaskService
from backend.app.workers.schedule import describe_cron_schedule, get_next_execution

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_cron_secret)])


def _status_for(result: TaskExecutionResult) -> int:
    if result.success:
        return status.HTTP_200_OK
    if result.processed_count > 0 and result.failed_count > 0:
        return status.HTTP_207_MULTI_STATUS
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@router.post("")
def run_recurring_invoices(
    service: ScheduledTaskService = Depends(get_task_service),
) -> JSONResponse:
    try:
        result = service.generate_due_recurring_invoices()
    except TaskAlreadyRunning as e:
        body = TaskExecutionResult(success=False, errors=[str(e)])
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=body.model_dump(mode="json"))
    except Exception as e:
        logger.exception("Recurring invoice run crashed")
        body = TaskExecutionResult(success=False, errors=[f"Unexpected error: {e}"])
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json"),
        )

    return JSONResponse(status_code=_status_for(result), content=result.model_dump(mode="json"))


@router.get("")
def recurring_invoice_task_status(
    service: ScheduledTaskService = Depends(get_task_service),
) -> dict:
    stats = service.get_task_statistics()
    next_run = get_next_execution(settings.RECURRING_CRON_SCHEDULE)
    return {
        **stats.model_dump(mode="json"),
        "is_running": service.is_task_running(),
        "next_execution": next_run.isoformat() if next_run else None,
        "schedule_description": describe_cron_schedule(settings.RECURRING_CRON_SCHEDULE),
    }
