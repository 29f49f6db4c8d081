from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Literal

from sqlalchemy.orm import Session

from backend.app.models.invoice import Invoice

logger = logging.getLogger(__name__)

NumberFormat = Literal["suffix", "prefix"]


def generate_recurring_invoice_number(
    base_number: str,
    sequence_number: int,
    format: NumberFormat = "suffix",
) -> str:
    """Return ``INV-001-007`` (suffix) or ``007-INV-001`` (prefix).

    The sequence is zero-padded to at least three digits and never truncated.
    """
    if format == "prefix":
        return f"{sequence_number:03d}-{base_number}"
    if format == "suffix":
        return f"{base_number}-{sequence_number:03d}"
    raise ValueError(f"Invalid invoice number format: {format}")


def invoice_number_exists(db: Session, invoice_number: str) -> bool:
    return (
        db.query(Invoice.id).filter(Invoice.invoice_number == invoice_number).first()
        is not None
    )


def generate_unique_invoice_number(
    db: Session,
    base_number: str,
    starting_sequence: int,
    max_attempts: int = 100,
    *,
    now: datetime | None = None,
) -> str:
    """Probe for the first unused sequence number from *starting_sequence*.

    After *max_attempts* collisions the number for *starting_sequence* gets a
    6-digit timestamp suffix.  The probe is a plain read: the unique constraint
    on ``invoices.invoice_number`` is what finally rejects a racing duplicate.
    """
    for attempt in range(max_attempts):
        candidate = generate_recurring_invoice_number(base_number, starting_sequence + attempt)
        if not invoice_number_exists(db, candidate):
            return candidate

    ts = now or datetime.now(timezone.utc)
    suffix = str(int(ts.timestamp() * 1000))[-6:]
    fallback = f"{generate_recurring_invoice_number(base_number, starting_sequence)}-{suffix}"
    logger.warning(
        "No free sequence for %s after %d attempts, using %s",
        base_number, max_attempts, fallback,
    )
    return fallback
