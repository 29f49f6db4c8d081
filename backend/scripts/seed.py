"""Seed the database with a demo client and a monthly recurring invoice template.

Usage:
    python -m backend.scripts.seed
"""

from __future__ import annotations

from decimal import Decimal

from backend.app.core.database import SessionLocal
from backend.app.models.client import ClientUser
from backend.app.models.invoice import Invoice
from backend.app.schemas.recurring import (
    BusinessInfo,
    ClientInfo,
    LineItemIn,
    RecurringConfigIn,
    RecurringTemplateCreate,
)
from backend.app.services.recurring import business_today
from backend.app.services.recurring_invoice import create_recurring_template

DEMO_CLIENT_EMAIL = "accounts@acme-traders.example"
DEMO_TEMPLATE_NUMBER = "INV-RET-001"

BUSINESS = BusinessInfo(
    name="Demo Consulting LLP",
    address="12 MG Road, Bengaluru",
    gstin="29ABCDE1234F1Z5",
    state="Karnataka",
    email="billing@demo-consulting.example",
)

CLIENT = ClientInfo(
    name="Acme Traders Pvt Ltd",
    address="4 Linking Road, Mumbai",
    gstin="27AAACA1234A1Z9",
    state="Maharashtra",
    email=DEMO_CLIENT_EMAIL,
)

ITEMS: list[LineItemIn] = [
    LineItemIn(
        description="Monthly bookkeeping retainer",
        hsn_sac="998222",
        quantity=Decimal("1"),
        rate=Decimal("25000"),
        gst_rate=Decimal("18"),
    ),
    LineItemIn(
        description="GST return filing",
        hsn_sac="998231",
        quantity=Decimal("2"),
        rate=Decimal("1500"),
        gst_rate=Decimal("18"),
    ),
]


def seed() -> None:
    db = SessionLocal()
    try:
        # ── Client ─────────────────────────────────────────────────────
        client = db.query(ClientUser).filter_by(email=DEMO_CLIENT_EMAIL).first()
        if client is None:
            client = ClientUser(
                email=DEMO_CLIENT_EMAIL,
                name=CLIENT.name,
                company=CLIENT.name,
                is_verified=True,
            )
            db.add(client)
            db.flush()
            print(f"Created client: {client.email}")

        # ── Recurring template ─────────────────────────────────────────
        exists = db.query(Invoice).filter_by(invoice_number=DEMO_TEMPLATE_NUMBER).first()
        if exists:
            print(f"Template {DEMO_TEMPLATE_NUMBER} already exists.")
        else:
            today = business_today()
            template = create_recurring_template(
                db,
                RecurringTemplateCreate(
                    invoice_number=DEMO_TEMPLATE_NUMBER,
                    client_id=client.id,
                    business=BUSINESS,
                    client=CLIENT,
                    items=ITEMS,
                    recurring=RecurringConfigIn(
                        frequency="monthly",
                        interval=1,
                        start_date=today,
                        max_occurrences=12,
                    ),
                ),
                today=today,
                actor="seed",
            )
            print(f"Created recurring template {template.invoice_number} ({template.id}).")

        db.commit()
        print("Seed complete.")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
