"""Shared test fixtures.

Every test gets its own file-backed SQLite database with the full schema, so
code that opens its own sessions (the scheduled task runner) sees the same
data as the test.  Seed data is committed; the runner never has to wait on a
write lock held by the test session.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

import backend.app.models.registry  # noqa: F401  (fills Base.metadata)
from backend.app.api.deps import get_task_service
from backend.app.core.database import Base, build_engine, get_db
from backend.app.main import app
from backend.app.models.client import ClientUser
from backend.app.models.invoice import Invoice
from backend.app.schemas.recurring import RecurringTemplateCreate
from backend.app.services.recurring_invoice import create_recurring_template
from backend.app.services.scheduled_tasks import ScheduledTaskService


# ─── Database per test ────────────────────────────────────────────────────────


@pytest.fixture()
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    eng = build_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def task_service(session_factory: sessionmaker) -> ScheduledTaskService:
    return ScheduledTaskService(
        session_factory,
        lease_seconds=600,
        max_retries=2,
        retry_delay=0,
        owner="test-runner",
    )


@pytest.fixture()
def client(
    session_factory: sessionmaker, task_service: ScheduledTaskService,
) -> Generator[TestClient, None, None]:
    """FastAPI TestClient; each request gets its own session on the test DB."""

    def _override_get_db() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_task_service] = lambda: task_service
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Data helpers ─────────────────────────────────────────────────────────────


@pytest.fixture()
def client_user(db: Session) -> ClientUser:
    user = ClientUser(
        email="billing@acme.example",
        name="Acme Traders",
        company="Acme Traders Pvt Ltd",
        is_verified=True,
    )
    db.add(user)
    db.commit()
    return user


def template_payload(
    client_id: Any,
    *,
    invoice_number: str = "INV-001",
    start_date: date = date(2026, 1, 1),
    frequency: str = "monthly",
    interval: int = 1,
    end_date: date | None = None,
    max_occurrences: int | None = 12,
    business_state: str = "Karnataka",
    client_state: str = "Karnataka",
) -> dict[str, Any]:
    return {
        "invoice_number": invoice_number,
        "client_id": str(client_id),
        "business": {
            "name": "Demo Consulting LLP",
            "address": "12 MG Road, Bengaluru",
            "gstin": "29ABCDE1234F1Z5",
            "state": business_state,
        },
        "client": {
            "name": "Acme Traders Pvt Ltd",
            "address": "4 Linking Road",
            "state": client_state,
        },
        "items": [
            {"description": "Retainer", "hsn_sac": "998222", "quantity": "1", "rate": "25000"},
            {"description": "GST filing", "quantity": "2", "rate": "1500", "gst_rate": "18"},
        ],
        "recurring": {
            "frequency": frequency,
            "interval": interval,
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat() if end_date else None,
            "max_occurrences": max_occurrences,
        },
    }


def make_template(db: Session, client_user: ClientUser, **kwargs: Any) -> Invoice:
    """Create and commit a template whose schedule starts on ``start_date``."""
    payload = template_payload(client_user.id, **kwargs)
    data = RecurringTemplateCreate.model_validate(payload)
    template = create_recurring_template(db, data, today=data.recurring.start_date, actor="test")
    db.commit()
    return template


def make_invoice(db: Session, client_user: ClientUser, invoice_number: str) -> Invoice:
    """Create and commit a plain, non-recurring invoice."""
    inv = Invoice(
        invoice_number=invoice_number,
        client_id=client_user.id,
        business_data={"name": "Demo Consulting LLP"},
        client_data={"name": "Acme Traders"},
        line_items=[{"description": "One-off", "amount": "100.00"}],
        subtotal=Decimal("100"),
        tax_amount=Decimal("18"),
        total_amount=Decimal("118"),
        invoice_date=date(2026, 1, 1),
        due_date=date(2026, 1, 31),
    )
    db.add(inv)
    db.commit()
    return inv
