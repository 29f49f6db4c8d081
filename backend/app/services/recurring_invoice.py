"""Recurring invoice templates and the generator that turns them into invoices.

Functions here do NOT call db.commit() unless their docstring says so; the
caller owns the transaction.  ``try_generate_recurring_invoice`` is the one
transactional boundary: it commits a successful generation and rolls back
everything else.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.exceptions import (
    InvalidRecurringConfig,
    MaxOccurrencesReached,
    NotDueForGeneration,
    RecurringInvoiceError,
    TemplateNotFound,
    UnsupportedFrequency,
)
from backend.app.models.client import ClientUser
from backend.app.models.invoice import Invoice, InvoiceStatus, PaymentStatus
from backend.app.schemas.recurring import (
    LineItemIn,
    RecurringConfig,
    RecurringConfigUpdate,
    RecurringTemplateCreate,
)
from backend.app.services.audit import log_action
from backend.app.services.invoice_numbering import (
    generate_unique_invoice_number,
    invoice_number_exists,
)
from backend.app.services.recurring import (
    MAX_INTERVAL,
    MIN_INTERVAL,
    business_today,
    calculate_recurring_due_date,
    describe_frequency,
    get_future_generation_dates,
    has_reached_max_occurrences,
    should_generate,
    update_config_after_generation,
    validate_recurring_config,
)

logger = logging.getLogger(__name__)

Q = Decimal("0.01")
ZERO = Decimal("0")
SYSTEM_ACTOR = "system"
GENERATION_CONFLICT_RETRIES = 3
OVERDUE_WARNING_DAYS = 7

# Config keys an edit may change but never clear.
_REQUIRED_CONFIG_FIELDS = ("frequency", "interval", "next_generation_date")


# ─── GST totals ──────────────────────────────────────────────────────────────


def split_gst(tax: Decimal, inter_state: bool) -> dict[str, Decimal]:
    """IGST for inter-state supply, otherwise CGST + SGST split evenly."""
    tax = tax.quantize(Q, rounding=ROUND_HALF_UP)
    nil = ZERO.quantize(Q)
    if inter_state:
        return {"cgst": nil, "sgst": nil, "igst": tax}
    half = (tax / 2).quantize(Q, rounding=ROUND_HALF_UP)
    return {"cgst": half, "sgst": tax - half, "igst": nil}


def compute_invoice_totals(items: list[LineItemIn], inter_state: bool = False) -> dict[str, Any]:
    """Return line snapshots plus subtotal, tax split and total for *items*."""
    lines: list[dict[str, str | None]] = []
    subtotal = ZERO
    tax = ZERO
    for item in items:
        amount = (item.quantity * item.rate).quantize(Q, rounding=ROUND_HALF_UP)
        line_tax = (amount * item.gst_rate / Decimal("100")).quantize(Q, rounding=ROUND_HALF_UP)
        subtotal += amount
        tax += line_tax
        lines.append({
            "description": item.description,
            "hsn_sac": item.hsn_sac,
            "quantity": str(item.quantity),
            "rate": str(item.rate),
            "gst_rate": str(item.gst_rate),
            "amount": str(amount),
            "tax_amount": str(line_tax),
        })
    return {
        "line_items": lines,
        "subtotal": subtotal,
        "tax_amount": tax,
        **split_gst(tax, inter_state),
        "total_amount": subtotal + tax,
    }


def is_inter_state(business: dict[str, Any], client: dict[str, Any]) -> bool:
    seller, buyer = business.get("state"), client.get("state")
    if not seller or not buyer:
        return False
    return seller.strip().lower() != buyer.strip().lower()


def _gst_breakdown(inv: Invoice) -> dict[str, str]:
    split = split_gst(
        Decimal(str(inv.tax_amount)), is_inter_state(inv.business_data, inv.client_data),
    )
    return {k: str(v) for k, v in split.items()}


# ─── Serialisation ───────────────────────────────────────────────────────────


def serialize_invoice(inv: Invoice) -> dict[str, Any]:
    return {
        "id": str(inv.id),
        "invoice_number": inv.invoice_number,
        "client_id": str(inv.client_id),
        "business": inv.business_data,
        "client": inv.client_data,
        "items": inv.line_items,
        "currency_code": inv.currency_code,
        "exchange_rate": str(inv.exchange_rate) if inv.exchange_rate is not None else None,
        "subtotal": str(inv.subtotal),
        "tax_amount": str(inv.tax_amount),
        "total_amount": str(inv.total_amount),
        "gst": _gst_breakdown(inv),
        "status": inv.status.value,
        "payment_status": inv.payment_status.value,
        "is_recurring": inv.is_recurring,
        "recurring_config": inv.recurring_config,
        "parent_invoice_id": str(inv.parent_invoice_id) if inv.parent_invoice_id else None,
        "invoice_date": inv.invoice_date.isoformat(),
        "due_date": inv.due_date.isoformat(),
        "created_at": inv.created_at.isoformat() if inv.created_at else None,
    }


def _serialize_template(db: Session, template: Invoice) -> dict[str, Any]:
    data = serialize_invoice(template)
    config = load_config(template)
    data["generated_count"] = count_generated_invoices(db, template.id)
    try:
        data["schedule_description"] = describe_frequency(config)
    except UnsupportedFrequency:
        data["schedule_description"] = None
    return data


# ─── Lookups ─────────────────────────────────────────────────────────────────


def load_config(template: Invoice) -> RecurringConfig:
    if template.recurring_config is None:
        raise TemplateNotFound("Invoice has no recurring configuration")
    return RecurringConfig.model_validate(template.recurring_config)


def _templates_query(db: Session):
    return db.query(Invoice).filter(
        Invoice.is_recurring.is_(True),
        Invoice.parent_invoice_id.is_(None),
    )


def _get_template(db: Session, template_id: UUID, *, for_update: bool = False) -> Invoice:
    query = db.query(Invoice).filter(Invoice.id == template_id)
    if for_update:
        query = query.with_for_update()
    template = query.first()
    if (
        template is None
        or not template.is_recurring
        or template.parent_invoice_id is not None
        or template.recurring_config is None
    ):
        raise TemplateNotFound()
    return template


def count_generated_invoices(db: Session, template_id: UUID) -> int:
    return (
        db.query(func.count(Invoice.id))
        .filter(Invoice.parent_invoice_id == template_id)
        .scalar()
    ) or 0


def get_template(db: Session, template_id: UUID) -> dict[str, Any]:
    return _serialize_template(db, _get_template(db, template_id))


def list_templates(db: Session, client_id: UUID | None = None) -> list[dict[str, Any]]:
    query = _templates_query(db)
    if client_id is not None:
        query = query.filter(Invoice.client_id == client_id)
    return [_serialize_template(db, t) for t in query.order_by(Invoice.created_at.desc()).all()]


def list_generated_invoices(db: Session, template_id: UUID) -> list[dict[str, Any]]:
    _get_template(db, template_id)
    children = (
        db.query(Invoice)
        .filter(Invoice.parent_invoice_id == template_id)
        .order_by(Invoice.invoice_date.desc())
        .all()
    )
    return [serialize_invoice(c) for c in children]


# ─── Template management ─────────────────────────────────────────────────────


def create_recurring_template(
    db: Session,
    data: RecurringTemplateCreate,
    *,
    today: date | None = None,
    actor: str | None = None,
) -> Invoice:
    """Validate and store a new template. Does NOT commit."""
    config = data.recurring.to_config()
    validation = validate_recurring_config(config, today=today or business_today())
    if not validation.is_valid:
        raise InvalidRecurringConfig(validation.errors)

    client = db.query(ClientUser).filter(ClientUser.id == data.client_id).first()
    if client is None:
        raise ValueError(f"Client {data.client_id} not found")

    if invoice_number_exists(db, data.invoice_number):
        raise ValueError(f"Invoice number {data.invoice_number} already exists")

    totals = compute_invoice_totals(data.items)
    template = Invoice(
        invoice_number=data.invoice_number,
        client_id=client.id,
        business_data=data.business.model_dump(mode="json"),
        client_data=data.client.model_dump(mode="json"),
        line_items=totals["line_items"],
        currency_code=data.currency_code,
        exchange_rate=data.exchange_rate,
        subtotal=totals["subtotal"],
        tax_amount=totals["tax_amount"],
        total_amount=totals["total_amount"],
        status=InvoiceStatus.DRAFT,
        payment_status=PaymentStatus.UNPAID,
        is_recurring=True,
        recurring_config=config.to_json(),
        invoice_date=config.start_date,
        due_date=calculate_recurring_due_date(config.start_date),
    )
    db.add(template)
    db.flush()

    log_action(
        db,
        actor=actor,
        action="RECURRING_TEMPLATE_CREATED",
        resource_type="invoices",
        resource_id=str(template.id),
        changes={"invoice_number": template.invoice_number, "recurring_config": config.to_json()},
    )
    return template


def update_recurring_config(
    db: Session,
    template_id: UUID,
    changes: RecurringConfigUpdate,
    *,
    actor: str | None = None,
) -> Invoice:
    """Apply a user edit to the schedule. Does NOT commit."""
    template = _get_template(db, template_id, for_update=True)
    current = load_config(template)
    update = changes.model_dump(exclude_unset=True)
    cleared = [name for name in _REQUIRED_CONFIG_FIELDS if name in update and update[name] is None]
    if cleared:
        raise InvalidRecurringConfig([f"{name} cannot be null" for name in cleared])
    if "frequency" in update:
        update["frequency"] = update["frequency"].strip().lower()
    updated = current.model_copy(update=update)

    validation = validate_recurring_config(updated)
    if not validation.is_valid:
        raise InvalidRecurringConfig(validation.errors)

    template.recurring_config = updated.to_json()
    db.flush()

    log_action(
        db,
        actor=actor,
        action="RECURRING_TEMPLATE_UPDATED",
        resource_type="invoices",
        resource_id=str(template.id),
        changes=changes.model_dump(mode="json", exclude_unset=True),
    )
    return template


def set_template_active(
    db: Session,
    template_id: UUID,
    is_active: bool,
    *,
    actor: str | None = None,
) -> Invoice:
    """Pause or resume a template. Does NOT commit."""
    template = _get_template(db, template_id, for_update=True)
    current = load_config(template)
    template.recurring_config = current.model_copy(update={"is_active": is_active}).to_json()
    db.flush()

    log_action(
        db,
        actor=actor,
        action="RECURRING_TEMPLATE_STATUS_CHANGED",
        resource_type="invoices",
        resource_id=str(template.id),
        changes={"old_is_active": current.is_active, "new_is_active": is_active},
    )
    return template


def delete_template(
    db: Session,
    template_id: UUID,
    *,
    delete_generated: bool = False,
    actor: str | None = None,
) -> None:
    """Delete a template. Generated invoices are detached unless
    *delete_generated* is set. Does NOT commit."""
    template = _get_template(db, template_id)
    children = db.query(Invoice).filter(Invoice.parent_invoice_id == template.id)
    if delete_generated:
        removed = children.delete(synchronize_session=False)
    else:
        removed = 0
        children.update({Invoice.parent_invoice_id: None}, synchronize_session=False)

    log_action(
        db,
        actor=actor,
        action="RECURRING_TEMPLATE_DELETED",
        resource_type="invoices",
        resource_id=str(template.id),
        changes={"invoice_number": template.invoice_number, "deleted_children": removed},
    )
    db.delete(template)
    db.flush()


# ─── Generation ──────────────────────────────────────────────────────────────


def _snapshot_child(
    template: Invoice, invoice_number: str, invoice_date: date,
) -> Invoice:
    return Invoice(
        invoice_number=invoice_number,
        client_id=template.client_id,
        business_data=copy.deepcopy(template.business_data),
        client_data=copy.deepcopy(template.client_data),
        line_items=copy.deepcopy(template.line_items),
        currency_code=template.currency_code,
        exchange_rate=template.exchange_rate,
        subtotal=template.subtotal,
        tax_amount=template.tax_amount,
        total_amount=template.total_amount,
        status=InvoiceStatus.DRAFT,
        payment_status=PaymentStatus.UNPAID,
        is_recurring=False,
        recurring_config=None,
        parent_invoice_id=template.id,
        invoice_date=invoice_date,
        due_date=calculate_recurring_due_date(invoice_date),
    )


def _advance_template(db: Session, template: Invoice, config: RecurringConfig) -> RecurringConfig:
    updated = update_config_after_generation(config)
    template.recurring_config = updated.to_json()
    db.flush()
    return updated


def generate_recurring_invoice(
    db: Session,
    template_id: UUID,
    *,
    today: date | None = None,
    actor: str = SYSTEM_ACTOR,
) -> Invoice:
    """Create the next invoice for a template and advance its schedule.

    Raises ``TemplateNotFound``, ``NotDueForGeneration`` or
    ``MaxOccurrencesReached``.  Does NOT commit: the child insert and the
    cursor update must be committed (or rolled back) together by the caller.
    """
    template = _get_template(db, template_id, for_update=True)
    config = load_config(template)

    if not should_generate(config, today or business_today()):
        raise NotDueForGeneration()

    generated_count = count_generated_invoices(db, template.id)
    if has_reached_max_occurrences(config, generated_count):
        raise MaxOccurrencesReached()

    invoice_number = generate_unique_invoice_number(
        db, template.invoice_number, generated_count + 1,
    )
    child = _snapshot_child(template, invoice_number, config.next_generation_date)
    db.add(child)
    db.flush()

    updated = _advance_template(db, template, config)

    log_action(
        db,
        actor=actor,
        action="RECURRING_INVOICE_GENERATED",
        resource_type="invoices",
        resource_id=str(template.id),
        changes={
            "invoice_id": str(child.id),
            "invoice_number": invoice_number,
            "next_generation_date": updated.next_generation_date.isoformat(),
        },
    )
    return child


@dataclass
class GenerationResult:
    template_id: UUID
    success: bool
    invoice: Invoice | None = None
    error: str | None = None
    error_code: str | None = None


def try_generate_recurring_invoice(
    db: Session,
    template_id: UUID,
    *,
    today: date | None = None,
    actor: str = SYSTEM_ACTOR,
) -> GenerationResult:
    """Generate one invoice inside its own transaction.

    Commits on success.  Business-rule failures are rolled back and returned
    as a failed ``GenerationResult``; an invoice-number collision rolls back
    and retries; any other error is rolled back and re-raised.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            invoice = generate_recurring_invoice(db, template_id, today=today, actor=actor)
            db.commit()
            return GenerationResult(template_id=template_id, success=True, invoice=invoice)
        except RecurringInvoiceError as exc:
            db.rollback()
            logger.info("Template %s not generated: %s", template_id, exc.message)
            return GenerationResult(
                template_id=template_id,
                success=False,
                error=exc.message,
                error_code=exc.code,
            )
        except IntegrityError:
            db.rollback()
            if attempt >= GENERATION_CONFLICT_RETRIES:
                raise
            logger.warning(
                "Invoice number conflict for template %s, retrying (%d/%d)",
                template_id, attempt, GENERATION_CONFLICT_RETRIES,
            )
        except Exception:
            db.rollback()
            raise


# ─── Queries over all templates ──────────────────────────────────────────────


def _templates_with_configs(db: Session) -> list[tuple[Invoice, RecurringConfig | None]]:
    result: list[tuple[Invoice, RecurringConfig | None]] = []
    for template in _templates_query(db).order_by(Invoice.created_at.asc()).all():
        try:
            result.append((template, load_config(template)))
        except (ValidationError, TemplateNotFound):
            logger.warning("Template %s has an unreadable recurring config", template.id)
            result.append((template, None))
    return result


def find_due_templates(db: Session, today: date | None = None) -> list[Invoice]:
    """Templates for which ``should_generate`` holds on *today*."""
    ref = today or business_today()
    return [
        template
        for template, config in _templates_with_configs(db)
        if config is not None and should_generate(config, ref)
    ]


def get_future_generations(
    db: Session, template_id: UUID, max_dates: int = 12,
) -> list[date]:
    template = _get_template(db, template_id)
    config = load_config(template)
    generated = count_generated_invoices(db, template.id)
    return list(get_future_generation_dates(config, max_dates, generated_count=generated))


def get_recurring_stats(
    db: Session, client_id: UUID | None = None, today: date | None = None,
) -> dict[str, Any]:
    ref = today or business_today()
    pairs = _templates_with_configs(db)
    if client_id is not None:
        pairs = [(t, c) for t, c in pairs if t.client_id == client_id]

    active = [t for t, c in pairs if c is not None and c.is_active]
    total_generated = sum(count_generated_invoices(db, t.id) for t, _ in pairs)
    total_value = sum((Decimal(str(t.total_amount)) for t, _ in pairs), ZERO)
    due = [t for t, c in pairs if c is not None and should_generate(c, ref)]
    return {
        "total_templates": len(pairs),
        "active_templates": len(active),
        "paused_templates": len(pairs) - len(active),
        "total_generated": total_generated,
        "total_value": str(total_value),
        "due_now": len(due),
    }


def validate_recurring_templates(db: Session, today: date | None = None) -> dict[str, Any]:
    """Report templates whose stored state needs attention."""
    ref = today or business_today()
    issues: list[dict[str, Any]] = []
    valid = 0

    for template, config in _templates_with_configs(db):
        problems: list[str] = []
        if config is None:
            problems.append("Missing or unreadable recurring configuration")
        else:
            if config.is_active:
                if config.end_date is not None and ref > config.end_date:
                    problems.append("End date has passed but template is still active")
                if config.max_occurrences is not None and has_reached_max_occurrences(
                    config, count_generated_invoices(db, template.id),
                ):
                    problems.append("Maximum occurrences reached but template is still active")
                days_past = (ref - config.next_generation_date).days
                if days_past > OVERDUE_WARNING_DAYS:
                    problems.append(f"Next generation date is {days_past} days overdue")
            if not MIN_INTERVAL <= config.interval <= MAX_INTERVAL:
                problems.append("Invalid interval value")

        if not template.business_data or not template.client_data or not template.line_items:
            problems.append("Incomplete invoice data (missing business, client, or items)")

        if problems:
            issues.append({
                "template_id": str(template.id),
                "invoice_number": template.invoice_number,
                "issues": problems,
            })
        else:
            valid += 1

    return {
        "valid_templates": valid,
        "invalid_templates": len(issues),
        "issues": issues,
    }
