"""Tests for recurring invoice numbering."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import Session

from backend.app.models.client import ClientUser
from backend.app.services.invoice_numbering import (
    generate_recurring_invoice_number,
    generate_unique_invoice_number,
    invoice_number_exists,
)
from backend.tests.conftest import make_invoice


class TestNumberFormat:
    def test_suffix(self) -> None:
        assert generate_recurring_invoice_number("INV-100", 7) == "INV-100-007"

    def test_prefix(self) -> None:
        assert generate_recurring_invoice_number("INV-100", 7, "prefix") == "007-INV-100"

    def test_wide_sequence_not_truncated(self) -> None:
        assert generate_recurring_invoice_number("INV-100", 1234) == "INV-100-1234"

    def test_unknown_format(self) -> None:
        with pytest.raises(ValueError, match="Invalid invoice number format"):
            generate_recurring_invoice_number("INV-100", 1, "infix")  # type: ignore[arg-type]


class TestUniqueNumber:
    def test_first_free_sequence(self, db: Session, client_user: ClientUser) -> None:
        assert generate_unique_invoice_number(db, "INV-100", 1) == "INV-100-001"

    def test_skips_taken_numbers(self, db: Session, client_user: ClientUser) -> None:
        make_invoice(db, client_user, "INV-100-001")
        make_invoice(db, client_user, "INV-100-002")

        assert invoice_number_exists(db, "INV-100-002") is True
        assert generate_unique_invoice_number(db, "INV-100", 1) == "INV-100-003"

    def test_starts_from_given_sequence(self, db: Session, client_user: ClientUser) -> None:
        make_invoice(db, client_user, "INV-100-001")
        assert generate_unique_invoice_number(db, "INV-100", 4) == "INV-100-004"

    def test_timestamp_fallback(self, db: Session, client_user: ClientUser) -> None:
        make_invoice(db, client_user, "INV-100-001")
        make_invoice(db, client_user, "INV-100-002")
        now = datetime(2026, 10, 19, 9, 0, 0, 123000, tzinfo=timezone.utc)

        number = generate_unique_invoice_number(db, "INV-100", 1, max_attempts=2, now=now)

        expected_suffix = str(int(now.timestamp() * 1000))[-6:]
        assert number == f"INV-100-001-{expected_suffix}"
        assert invoice_number_exists(db, number) is False
