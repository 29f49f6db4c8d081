"""Batch runner for due recurring invoices.

One run at a time: a process-local lock stops overlapping runs inside a
worker, and a ``task_leases`` row stops them across processes and hosts.
Each template is generated in its own transaction, so a failure only costs
that template.
"""

from __future__ import annotations

import logging
import os
import socket
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import TypeVar
from uuid import UUID, uuid4

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from backend.app.core.config import settings
from backend.app.core.database import SessionLocal
from backend.app.core.exceptions import TaskAlreadyRunning
from backend.app.models.task_lease import TaskLease
from backend.app.schemas.recurring import TaskExecutionResult, TaskStatistics
from backend.app.services.recurring import business_today
from backend.app.services.recurring_invoice import (
    find_due_templates,
    get_recurring_stats,
    serialize_invoice,
    try_generate_recurring_invoice,
)

logger = logging.getLogger(__name__)

LEASE_NAME = "recurring-invoice-generation"

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class ScheduledTaskService:
    def __init__(
        self,
        session_factory: sessionmaker | Callable[[], Session] = SessionLocal,
        *,
        lease_seconds: int = settings.TASK_LEASE_SECONDS,
        max_retries: int = settings.TASK_MAX_RETRIES,
        retry_delay: float = settings.TASK_RETRY_DELAY_SECONDS,
        backoff: float = settings.TASK_RETRY_BACKOFF,
        owner: str | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.lease_seconds = lease_seconds
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.backoff = backoff
        self.owner = owner or f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"
        self._lock = threading.Lock()

    # ─── Sessions & retries ──────────────────────────────────────────────

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    def _with_retries(self, operation: Callable[[Session], T], label: str) -> T:
        """Run *operation* in a fresh session, retrying transient store errors."""
        delay = self.retry_delay
        attempt = 1
        while True:
            try:
                with self._session() as db:
                    return operation(db)
            except OperationalError as exc:
                if attempt >= self.max_retries:
                    raise
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    label, attempt, self.max_retries, exc.orig, delay,
                )
                if delay > 0:
                    time.sleep(delay)
                delay *= self.backoff
                attempt += 1

    # ─── Single flight ───────────────────────────────────────────────────

    def _acquire_lease(self, now: datetime) -> bool:
        expires = now + timedelta(seconds=self.lease_seconds)
        values = {
            TaskLease.owner: self.owner,
            TaskLease.acquired_at: now,
            TaskLease.expires_at: expires,
            TaskLease.last_started_at: now,
        }
        with self._session() as db:
            taken = (
                db.query(TaskLease)
                .filter(
                    TaskLease.name == LEASE_NAME,
                    or_(
                        TaskLease.owner.is_(None),
                        TaskLease.expires_at.is_(None),
                        TaskLease.expires_at <= now,
                    ),
                )
                .update(values, synchronize_session=False)
            )
            if taken:
                db.commit()
                return True

            if db.get(TaskLease, LEASE_NAME) is not None:
                db.rollback()
                return False

            db.add(TaskLease(
                name=LEASE_NAME,
                owner=self.owner,
                acquired_at=now,
                expires_at=expires,
                last_started_at=now,
            ))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return False
            return True

    def _release_lease(self) -> None:
        with self._session() as db:
            (
                db.query(TaskLease)
                .filter(TaskLease.name == LEASE_NAME, TaskLease.owner == self.owner)
                .update(
                    {
                        TaskLease.owner: None,
                        TaskLease.expires_at: None,
                        TaskLease.last_finished_at: _utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            db.commit()

    @contextmanager
    def _single_flight(self) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise TaskAlreadyRunning(LEASE_NAME)
        try:
            if not self._acquire_lease(_utcnow()):
                raise TaskAlreadyRunning(LEASE_NAME)
            try:
                yield
            finally:
                self._release_lease()
        finally:
            self._lock.release()

    def is_task_running(self) -> bool:
        if self._lock.locked():
            return True
        with self._session() as db:
            lease = db.get(TaskLease, LEASE_NAME)
            if lease is None or lease.owner is None:
                return False
            expires = _as_utc(lease.expires_at)
            return expires is not None and expires > _utcnow()

    # ─── Batch ───────────────────────────────────────────────────────────

    def _generate_one(self, template_id: UUID, today: date) -> dict:
        def operation(db: Session) -> dict:
            outcome = try_generate_recurring_invoice(db, template_id, today=today)
            if not outcome.success:
                return {"success": False, "error": outcome.error}
            return {"success": True, "invoice": serialize_invoice(outcome.invoice)}

        return self._with_retries(operation, f"Generation for template {template_id}")

    def generate_due_recurring_invoices(self, today: date | None = None) -> TaskExecutionResult:
        """Generate every due template. Raises ``TaskAlreadyRunning`` if a
        run is already in progress."""
        ref = today or business_today()
        result = TaskExecutionResult()

        with self._single_flight():
            logger.info("Recurring invoice run started for %s", ref.isoformat())
            try:
                due = self._with_retries(
                    lambda db: [(t.id, t.invoice_number) for t in find_due_templates(db, ref)],
                    "Loading due templates",
                )
            except SQLAlchemyError as exc:
                logger.exception("Could not load due recurring templates")
                result.success = False
                result.errors.append(f"Failed to load due templates: {exc}")
                return result

            for template_id, invoice_number in due:
                try:
                    outcome = self._generate_one(template_id, ref)
                except SQLAlchemyError as exc:
                    logger.exception("Generation failed for template %s", template_id)
                    outcome = {"success": False, "error": str(exc)}
                except Exception as exc:
                    logger.exception("Unexpected error generating template %s", template_id)
                    outcome = {"success": False, "error": str(exc) or type(exc).__name__}

                if outcome["success"]:
                    result.processed_count += 1
                    result.generated_invoices.append(outcome["invoice"])
                    logger.info(
                        "Generated %s from template %s",
                        outcome["invoice"]["invoice_number"], invoice_number,
                    )
                else:
                    result.failed_count += 1
                    result.errors.append(f"{invoice_number} ({template_id}): {outcome['error']}")

            result.success = result.failed_count == 0
            logger.info(
                "Recurring invoice run finished: %d generated, %d failed",
                result.processed_count, result.failed_count,
            )
        return result

    def get_task_statistics(self, today: date | None = None) -> TaskStatistics:
        with self._session() as db:
            stats = get_recurring_stats(db, today=today)
            lease = db.get(TaskLease, LEASE_NAME)
            return TaskStatistics(
                due_invoices_count=stats["due_now"],
                active_templates_count=stats["active_templates"],
                total_templates=stats["total_templates"],
                last_execution_time=_as_utc(lease.last_finished_at) if lease else None,
            )


scheduled_task_service = ScheduledTaskService()
