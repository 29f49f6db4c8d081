"""Invoices and recurring invoice templates.

A template is an ``Invoice`` with ``is_recurring = True`` and a
``recurring_config`` JSON document.  Every invoice generated from it is an
ordinary invoice whose ``parent_invoice_id`` points back at the template.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.core.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class InvoiceStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_number: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("client_users.id"), nullable=False
    )

    # Snapshots taken when the invoice is written; never re-derived later.
    business_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    client_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    line_items: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False)

    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    exchange_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=20, scale=6), nullable=True
    )
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=4), nullable=False
    )

    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus, name="invoicestatus"),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="paymentstatus"),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )

    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_config: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    parent_invoice_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True
    )

    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    paid_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    client: Mapped["ClientUser"] = relationship(back_populates="invoices")  # noqa: F821
    parent: Mapped[Invoice | None] = relationship(
        back_populates="child_invoices", remote_side="Invoice.id"
    )
    child_invoices: Mapped[list[Invoice]] = relationship(
        back_populates="parent", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_invoices_client", "client_id"),
        Index("ix_invoices_parent", "parent_invoice_id"),
        Index("ix_invoices_recurring", "is_recurring"),
        Index("ix_invoices_status", "status"),
        Index("ix_invoices_due_date", "due_date"),
    )
