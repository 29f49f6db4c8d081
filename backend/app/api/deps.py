from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, status

from backend.app.core.config import settings
from backend.app.services.scheduled_tasks import ScheduledTaskService, scheduled_task_service


def get_task_service() -> ScheduledTaskService:
    return scheduled_task_service


def get_actor(x_actor_id: str | None = Header(default=None)) -> str | None:
    """Identity forwarded by the authenticating gateway, recorded on audit rows."""
    return x_actor_id


def require_cron_secret(x_cron_secret: str | None = Header(default=None)) -> None:
    """Reject trigger calls without the shared secret, when one is configured."""
    if not settings.CRON_SECRET:
        return
    if x_cron_secret is None or not hmac.compare_digest(x_cron_secret, settings.CRON_SECRET):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )
