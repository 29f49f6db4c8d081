"""Schedule math for recurring invoice templates.

Pure functions over ``RecurringConfig`` and a reference date: no database
access, no clock reads unless the caller leaves ``today`` out.
"""

from __future__ import annotations

from calendar import monthrange
from collections.abc import Iterator
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from backend.app.core.config import settings
from backend.app.core.exceptions import UnsupportedFrequency
from backend.app.schemas.recurring import RecurringConfig, RecurringFrequency, ValidationResult

MIN_INTERVAL = 1
MAX_INTERVAL = 12
MIN_OCCURRENCES = 1
MAX_OCCURRENCES = 1000
PAYMENT_TERMS_DAYS = 30

_FREQUENCY_LABELS: dict[RecurringFrequency, tuple[str, str]] = {
    RecurringFrequency.WEEKLY: ("Weekly", "weeks"),
    RecurringFrequency.MONTHLY: ("Monthly", "months"),
    RecurringFrequency.QUARTERLY: ("Quarterly", "quarters"),
    RecurringFrequency.YEARLY: ("Yearly", "years"),
}


# ─── Date helpers ─────────────────────────────────────────────────────────────


def business_today() -> date:
    """Calendar date in ``CRON_TIMEZONE``, the zone the beat schedule fires in."""
    return datetime.now(ZoneInfo(settings.CRON_TIMEZONE)).date()


def _add_months(d: date, months: int) -> date:
    """Add *months* calendar months to *d*, clamping to end-of-month."""
    month = d.month - 1 + months
    year = d.year + month // 12
    month = month % 12 + 1
    day = min(d.day, monthrange(year, month)[1])
    return date(year, month, day)


def _parse_frequency(frequency: str | RecurringFrequency) -> RecurringFrequency:
    try:
        return RecurringFrequency(frequency)
    except ValueError:
        raise UnsupportedFrequency(frequency) from None


def calculate_next_generation_date(
    current: date, frequency: str | RecurringFrequency, interval: int,
) -> date:
    """Return the date *interval* frequency units after *current*."""
    freq = _parse_frequency(frequency)
    if freq == RecurringFrequency.WEEKLY:
        return current + timedelta(weeks=interval)
    if freq == RecurringFrequency.MONTHLY:
        return _add_months(current, interval)
    if freq == RecurringFrequency.QUARTERLY:
        return _add_months(current, 3 * interval)
    # YEARLY
    return _add_months(current, 12 * interval)


def calculate_recurring_due_date(
    invoice_date: date, payment_terms_days: int = PAYMENT_TERMS_DAYS,
) -> date:
    return invoice_date + timedelta(days=payment_terms_days)


# ─── Due checks ──────────────────────────────────────────────────────────────


def should_generate(config: RecurringConfig, now: date | None = None) -> bool:
    """True when the template is active, the cursor has been reached and the
    end date (inclusive) has not passed.

    The occurrence cap is not checked here: counting children needs the store.
    """
    if not config.is_active:
        return False
    today = now or business_today()
    if today < config.next_generation_date:
        return False
    if config.end_date is not None and today > config.end_date:
        return False
    return True


def has_reached_max_occurrences(config: RecurringConfig, generated_count: int) -> bool:
    if config.max_occurrences is None:
        return False
    return generated_count >= config.max_occurrences


def update_config_after_generation(config: RecurringConfig) -> RecurringConfig:
    """Return a copy of *config* with the cursor advanced by one step."""
    next_date = calculate_next_generation_date(
        config.next_generation_date, config.frequency, config.interval,
    )
    return config.model_copy(update={"next_generation_date": next_date})


# ─── Projection ──────────────────────────────────────────────────────────────


class FutureGenerationDates:
    """Upcoming generation dates for a config, computed lazily.

    Each call to ``iter()`` starts again from ``next_generation_date``.
    ``generated_count`` is the number of invoices already generated, so a
    template that has used 2 of 3 occurrences projects a single date.
    """

    def __init__(
        self, config: RecurringConfig, max_dates: int = 12, generated_count: int = 0,
    ) -> None:
        self.config = config
        self.max_dates = max_dates
        self.generated_count = generated_count

    def __iter__(self) -> Iterator[date]:
        cfg = self.config
        current = cfg.next_generation_date
        yielded = 0
        while yielded < self.max_dates:
            if cfg.end_date is not None and current > cfg.end_date:
                return
            if has_reached_max_occurrences(cfg, self.generated_count + yielded):
                return
            yield current
            yielded += 1
            current = calculate_next_generation_date(current, cfg.frequency, cfg.interval)


def get_future_generation_dates(
    config: RecurringConfig, max_dates: int = 12, generated_count: int = 0,
) -> FutureGenerationDates:
    return FutureGenerationDates(config, max_dates, generated_count)


def describe_frequency(config: RecurringConfig) -> str:
    """Human-readable cadence, e.g. ``Monthly`` or ``Every 2 weeks``."""
    freq = _parse_frequency(config.frequency)
    single, plural = _FREQUENCY_LABELS[freq]
    if config.interval == 1:
        return single
    return f"Every {config.interval} {plural}"


# ─── Validation ──────────────────────────────────────────────────────────────


def validate_recurring_config(
    config: RecurringConfig, today: date | None = None,
) -> ValidationResult:
    """Check *config* against every schedule rule and report all violations.

    Pass *today* when a schedule is being created: the start date must then
    not lie before yesterday.
    """
    errors: list[str] = []

    allowed = [f.value for f in RecurringFrequency]
    if config.frequency not in allowed:
        errors.append(f"Frequency must be one of: {', '.join(allowed)}")

    if not MIN_INTERVAL <= config.interval <= MAX_INTERVAL:
        errors.append(f"Interval must be between {MIN_INTERVAL} and {MAX_INTERVAL}")

    if today is not None and config.start_date < today - timedelta(days=1):
        errors.append("Start date cannot be in the past")

    if config.end_date is not None and config.end_date <= config.start_date:
        errors.append("End date must be after start date")

    if config.next_generation_date < config.start_date:
        errors.append("Next generation date cannot be before start date")

    if config.max_occurrences is not None and not (
        MIN_OCCURRENCES <= config.max_occurrences <= MAX_OCCURRENCES
    ):
        errors.append(
            f"Max occurrences must be between {MIN_OCCURRENCES} and {MAX_OCCURRENCES}"
        )

    if config.end_date is None and config.max_occurrences is None:
        errors.append("Either end date or max occurrences must be specified")

    return ValidationResult(is_valid=not errors, errors=errors)
