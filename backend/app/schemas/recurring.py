from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RecurringFrequency(str, enum.Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


# ─── Recurring configuration ─────────────────────────────────────────────────


class RecurringConfig(BaseModel):
    """Schedule embedded on a template invoice (``invoices.recurring_config``).

    Values are deliberately loose (``frequency`` is a plain string, no range
    constraints) so a stored document that has gone bad can still be loaded
    and reported on by ``validate_recurring_config``.  The model is frozen:
    changes go through ``model_copy(update=...)`` and are persisted whole.
    """

    model_config = ConfigDict(frozen=True)

    frequency: str
    interval: int
    start_date: date
    end_date: date | None = None
    max_occurrences: int | None = None
    next_generation_date: date
    is_active: bool = True

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class RecurringConfigIn(BaseModel):
    frequency: str
    interval: int = 1
    start_date: date
    end_date: date | None = None
    max_occurrences: int | None = None
    next_generation_date: date | None = None
    is_active: bool = True

    @field_validator("frequency")
    @classmethod
    def normalise_frequency(cls, v: str) -> str:
        return v.strip().lower()

    def to_config(self) -> RecurringConfig:
        return RecurringConfig(
            frequency=self.frequency,
            interval=self.interval,
            start_date=self.start_date,
            end_date=self.end_date,
            max_occurrences=self.max_occurrences,
            next_generation_date=self.next_generation_date or self.start_date,
            is_active=self.is_active,
        )


class RecurringConfigUpdate(BaseModel):
    frequency: str | None = None
    interval: int | None = None
    end_date: date | None = None
    max_occurrences: int | None = None
    next_generation_date: date | None = None


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)


# ─── Template creation ───────────────────────────────────────────────────────


class BusinessInfo(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: str = ""
    gstin: str | None = Field(default=None, max_length=15)
    state: str | None = None
    email: str | None = None
    phone: str | None = None


class ClientInfo(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    address: str = ""
    gstin: str | None = Field(default=None, max_length=15)
    state: str | None = None
    email: str | None = None


class LineItemIn(BaseModel):
    description: str = Field(..., min_length=1)
    hsn_sac: str | None = None
    quantity: Decimal = Field(..., gt=0)
    rate: Decimal = Field(..., ge=0)
    gst_rate: Decimal = Field(default=Decimal("18"), ge=0, le=28)


class RecurringTemplateCreate(BaseModel):
    invoice_number: str = Field(..., min_length=1, max_length=80)
    client_id: UUID
    business: BusinessInfo
    client: ClientInfo
    items: list[LineItemIn] = Field(..., min_length=1)
    currency_code: str = Field(default="INR", min_length=3, max_length=3)
    exchange_rate: Decimal | None = Field(default=None, gt=0)
    recurring: RecurringConfigIn

    @field_validator("currency_code")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class StatusUpdateIn(BaseModel):
    is_active: bool


# ─── Task runner results ─────────────────────────────────────────────────────


class TaskExecutionResult(BaseModel):
    success: bool = True
    processed_count: int = 0
    failed_count: int = 0
    errors: list[str] = Field(default_factory=list)
    generated_invoices: list[dict[str, Any]] = Field(default_factory=list)


class TaskStatistics(BaseModel):
    due_invoices_count: int = 0
    active_templates_count: int = 0
    total_templates: int = 0
    last_execution_time: datetime | None = None
