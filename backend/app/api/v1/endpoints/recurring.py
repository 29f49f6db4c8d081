"""API endpoints for recurring invoice templates."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from backend.app.api.deps import get_actor
from backend.app.core.database import get_db
from backend.app.core.exceptions import (
    InvalidRecurringConfig,
    MaxOccurrencesReached,
    NotDueForGeneration,
    TemplateNotFound,
)
from backend.app.schemas.recurring import (
    RecurringConfigIn,
    RecurringConfigUpdate,
    RecurringTemplateCreate,
    StatusUpdateIn,
    ValidationResult,
)
from backend.app.services.recurring import business_today, validate_recurring_config
from backend.app.services.recurring_invoice import (
    create_recurring_template,
    delete_template,
    get_future_generations,
    get_recurring_stats,
    get_template,
    list_generated_invoices,
    list_templates,
    serialize_invoice,
    set_template_active,
    try_generate_recurring_invoice,
    update_recurring_config,
    validate_recurring_templates,
)

router = APIRouter()

_CONFLICT_CODES = {NotDueForGeneration.code, MaxOccurrencesReached.code}


# ─── Helpers ─────────────────────────────────────────────────────────────────


def _http_error(e: ValueError) -> HTTPException:
    if isinstance(e, TemplateNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, (NotDueForGeneration, MaxOccurrencesReached)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, InvalidRecurringConfig):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": e.message, "errors": e.errors},
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# ─── Collection ──────────────────────────────────────────────────────────────


@router.get("")
def list_recurring_templates(
    client_id: UUID | None = None,
    db: Session = Depends(get_db),
) -> list[dict]:
    return list_templates(db, client_id=client_id)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_template(
    body: RecurringTemplateCreate,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    try:
        template = create_recurring_template(db, body, actor=actor)
        db.commit()
        return get_template(db, template.id)
    except ValueError as e:
        db.rollback()
        raise _http_error(e)


@router.get("/stats")
def recurring_stats(
    client_id: UUID | None = None,
    db: Session = Depends(get_db),
) -> dict:
    return get_recurring_stats(db, client_id=client_id)


@router.post("/validate-config")
def validate_config(body: RecurringConfigIn) -> ValidationResult:
    return validate_recurring_config(body.to_config(), today=business_today())


@router.get("/validate")
def validate_templates(db: Session = Depends(get_db)) -> dict:
    return validate_recurring_templates(db)


# ─── Single template ─────────────────────────────────────────────────────────


@router.get("/{template_id}")
def get_recurring_template(
    template_id: UUID,
    db: Session = Depends(get_db),
) -> dict:
    try:
        return get_template(db, template_id)
    except ValueError as e:
        raise _http_error(e)


@router.put("/{template_id}")
def update_template(
    template_id: UUID,
    body: RecurringConfigUpdate,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    try:
        update_recurring_config(db, template_id, body, actor=actor)
        db.commit()
        return get_template(db, template_id)
    except ValueError as e:
        db.rollback()
        raise _http_error(e)


@router.patch("/{template_id}/status")
def patch_status(
    template_id: UUID,
    body: StatusUpdateIn,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    try:
        set_template_active(db, template_id, body.is_active, actor=actor)
        db.commit()
        return get_template(db, template_id)
    except ValueError as e:
        db.rollback()
        raise _http_error(e)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_template(
    template_id: UUID,
    delete_generated: bool = False,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> None:
    try:
        delete_template(db, template_id, delete_generated=delete_generated, actor=actor)
        db.commit()
    except ValueError as e:
        db.rollback()
        raise _http_error(e)


@router.get("/{template_id}/invoices")
def template_invoices(
    template_id: UUID,
    db: Session = Depends(get_db),
) -> list[dict]:
    try:
        return list_generated_invoices(db, template_id)
    except ValueError as e:
        raise _http_error(e)


@router.get("/{template_id}/future-dates")
def future_dates(
    template_id: UUID,
    max_dates: int = Query(12, ge=1, le=60),
    db: Session = Depends(get_db),
) -> dict:
    try:
        dates = get_future_generations(db, template_id, max_dates=max_dates)
    except ValueError as e:
        raise _http_error(e)
    return {"template_id": str(template_id), "dates": [d.isoformat() for d in dates]}


@router.post("/{template_id}/generate", status_code=status.HTTP_201_CREATED)
def generate_now(
    template_id: UUID,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    outcome = try_generate_recurring_invoice(db, template_id, actor=actor or "api")
    if outcome.success:
        return serialize_invoice(outcome.invoice)
    if outcome.error_code == TemplateNotFound.code:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=outcome.error)
    if outcome.error_code in _CONFLICT_CODES:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=outcome.error)
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=outcome.error)
