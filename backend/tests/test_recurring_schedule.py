"""Tests for recurring schedule math and cron helpers."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from backend.app.core.config import settings
from backend.app.core.exceptions import UnsupportedFrequency
from backend.app.schemas.recurring import RecurringConfig, RecurringConfigIn
from backend.app.services import recurring
from backend.app.services.recurring import (
    _add_months,
    business_today,
    calculate_next_generation_date,
    calculate_recurring_due_date,
    describe_frequency,
    get_future_generation_dates,
    has_reached_max_occurrences,
    should_generate,
    update_config_after_generation,
    validate_recurring_config,
)
from backend.app.workers.schedule import (
    describe_cron_schedule,
    get_next_execution,
    parse_cron_expression,
)


def _config(**overrides: object) -> RecurringConfig:
    values: dict[str, object] = {
        "frequency": "monthly",
        "interval": 1,
        "start_date": date(2026, 1, 1),
        "end_date": None,
        "max_occurrences": 12,
        "next_generation_date": date(2026, 1, 1),
        "is_active": True,
    }
    values.update(overrides)
    return RecurringConfig(**values)


# ─── Date arithmetic ─────────────────────────────────────────────────────────


class TestNextGenerationDate:
    def test_weekly(self) -> None:
        assert calculate_next_generation_date(date(2026, 1, 1), "weekly", 1) == date(2026, 1, 8)

    def test_weekly_interval(self) -> None:
        assert calculate_next_generation_date(date(2026, 1, 1), "weekly", 3) == date(2026, 1, 22)

    def test_monthly(self) -> None:
        assert calculate_next_generation_date(date(2026, 1, 15), "monthly", 1) == date(2026, 2, 15)

    def test_monthly_clamps_to_month_end(self) -> None:
        assert calculate_next_generation_date(date(2025, 1, 31), "monthly", 1) == date(2025, 2, 28)

    def test_monthly_leap_year(self) -> None:
        assert calculate_next_generation_date(date(2024, 1, 31), "monthly", 1) == date(2024, 2, 29)

    def test_monthly_crosses_year(self) -> None:
        assert calculate_next_generation_date(date(2026, 11, 30), "monthly", 2) == date(2027, 1, 30)

    def test_quarterly(self) -> None:
        assert calculate_next_generation_date(date(2026, 1, 15), "quarterly", 1) == date(2026, 4, 15)

    def test_quarterly_interval(self) -> None:
        assert calculate_next_generation_date(date(2026, 1, 31), "quarterly", 2) == date(2026, 7, 31)

    def test_yearly_from_leap_day(self) -> None:
        assert calculate_next_generation_date(date(2024, 2, 29), "yearly", 1) == date(2025, 2, 28)

    def test_unsupported_frequency(self) -> None:
        with pytest.raises(UnsupportedFrequency, match="Invalid frequency: daily"):
            calculate_next_generation_date(date(2026, 1, 1), "daily", 1)

    def test_add_months_annually(self) -> None:
        assert _add_months(date(2026, 2, 28), 12) == date(2027, 2, 28)

    def test_monthly_twelve_steps_is_one_year(self) -> None:
        current = date(2026, 1, 15)
        for _ in range(12):
            current = calculate_next_generation_date(current, "monthly", 1)
        assert current == date(2027, 1, 15)

    def test_monthly_steps_from_month_end_drift(self) -> None:
        # Each step clamps from the previous cursor, so the 31st settles on the 28th.
        current = date(2026, 1, 31)
        seen = []
        for _ in range(12):
            current = calculate_next_generation_date(current, "monthly", 1)
            seen.append(current)
        assert seen[:3] == [date(2026, 2, 28), date(2026, 3, 28), date(2026, 4, 28)]
        assert seen[-1] == date(2027, 1, 28)

    def test_due_date_is_thirty_days_later(self) -> None:
        assert calculate_recurring_due_date(date(2026, 1, 15)) == date(2026, 2, 14)

    def test_due_date_custom_terms(self) -> None:
        assert calculate_recurring_due_date(date(2026, 1, 15), 7) == date(2026, 1, 22)


class _EveningUtc(datetime):
    @classmethod
    def now(cls, tz=None):
        return datetime(2026, 1, 1, 20, 0, tzinfo=timezone.utc).astimezone(tz)


class TestBusinessToday:
    def test_uses_cron_timezone(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(recurring, "datetime", _EveningUtc)
        monkeypatch.setattr(settings, "CRON_TIMEZONE", "Asia/Kolkata")
        assert business_today() == date(2026, 1, 2)

    def test_other_zone(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(recurring, "datetime", _EveningUtc)
        monkeypatch.setattr(settings, "CRON_TIMEZONE", "America/New_York")
        assert business_today() == date(2026, 1, 1)


# ─── Due checks ──────────────────────────────────────────────────────────────


class TestShouldGenerate:
    def test_due_on_cursor(self) -> None:
        assert should_generate(_config(), date(2026, 1, 1)) is True

    def test_due_after_cursor(self) -> None:
        assert should_generate(_config(), date(2026, 3, 10)) is True

    def test_not_due_before_cursor(self) -> None:
        assert should_generate(_config(), date(2025, 12, 31)) is False

    def test_inactive_never_due(self) -> None:
        assert should_generate(_config(is_active=False), date(2026, 6, 1)) is False

    def test_end_date_inclusive(self) -> None:
        config = _config(end_date=date(2026, 3, 1), next_generation_date=date(2026, 3, 1))
        assert should_generate(config, date(2026, 3, 1)) is True

    def test_past_end_date(self) -> None:
        config = _config(end_date=date(2026, 3, 1), next_generation_date=date(2026, 3, 1))
        assert should_generate(config, date(2026, 3, 2)) is False

    def test_max_occurrences(self) -> None:
        config = _config(max_occurrences=3)
        assert has_reached_max_occurrences(config, 2) is False
        assert has_reached_max_occurrences(config, 3) is True

    def test_no_cap(self) -> None:
        config = _config(max_occurrences=None, end_date=date(2027, 1, 1))
        assert has_reached_max_occurrences(config, 10_000) is False


class TestUpdateAfterGeneration:
    def test_advances_cursor_only(self) -> None:
        config = _config(next_generation_date=date(2026, 1, 31))
        updated = update_config_after_generation(config)

        assert updated.next_generation_date == date(2026, 2, 28)
        assert updated.model_dump(exclude={"next_generation_date"}) == config.model_dump(
            exclude={"next_generation_date"}
        )

    def test_input_config_untouched(self) -> None:
        config = _config()
        update_config_after_generation(config)
        assert config.next_generation_date == date(2026, 1, 1)


# ─── Projection ──────────────────────────────────────────────────────────────


class TestFutureGenerationDates:
    def test_respects_max_dates(self) -> None:
        config = _config(max_occurrences=None, end_date=date(2030, 1, 1))
        dates = list(get_future_generation_dates(config, max_dates=4))
        assert dates == [date(2026, 1, 1), date(2026, 2, 1), date(2026, 3, 1), date(2026, 4, 1)]

    def test_stops_at_end_date(self) -> None:
        config = _config(frequency="weekly", max_occurrences=None, end_date=date(2026, 1, 20))
        dates = list(get_future_generation_dates(config))
        assert dates == [date(2026, 1, 1), date(2026, 1, 8), date(2026, 1, 15)]

    def test_stops_at_occurrence_cap(self) -> None:
        dates = list(get_future_generation_dates(_config(max_occurrences=3)))
        assert len(dates) == 3

    def test_counts_invoices_already_generated(self) -> None:
        config = _config(max_occurrences=3, next_generation_date=date(2026, 3, 1))
        dates = list(get_future_generation_dates(config, generated_count=2))
        assert dates == [date(2026, 3, 1)]

    def test_cap_already_reached(self) -> None:
        assert list(get_future_generation_dates(_config(max_occurrences=2), generated_count=2)) == []

    def test_iterable_is_restartable(self) -> None:
        projection = get_future_generation_dates(_config(), max_dates=3)
        assert list(projection) == list(projection)

    def test_describe_frequency(self) -> None:
        assert describe_frequency(_config()) == "Monthly"
        assert describe_frequency(_config(frequency="weekly", interval=2)) == "Every 2 weeks"


# ─── Validation ──────────────────────────────────────────────────────────────


class TestValidateRecurringConfig:
    def test_valid(self) -> None:
        result = validate_recurring_config(_config(), today=date(2026, 1, 1))
        assert result.is_valid is True
        assert result.errors == []

    def test_bad_frequency(self) -> None:
        result = validate_recurring_config(_config(frequency="daily"))
        assert "Frequency must be one of: weekly, monthly, quarterly, yearly" in result.errors

    @pytest.mark.parametrize("interval", [0, 13])
    def test_interval_out_of_bounds(self, interval: int) -> None:
        result = validate_recurring_config(_config(interval=interval))
        assert result.errors == ["Interval must be between 1 and 12"]

    def test_interval_upper_bound_allowed(self) -> None:
        assert validate_recurring_config(_config(interval=12)).is_valid is True

    def test_start_yesterday_allowed(self) -> None:
        result = validate_recurring_config(_config(), today=date(2026, 1, 2))
        assert result.is_valid is True

    def test_start_in_past(self) -> None:
        result = validate_recurring_config(_config(), today=date(2026, 1, 3))
        assert result.errors == ["Start date cannot be in the past"]

    def test_past_start_ignored_without_today(self) -> None:
        assert validate_recurring_config(_config()).is_valid is True

    def test_end_before_start(self) -> None:
        result = validate_recurring_config(_config(end_date=date(2026, 1, 1)))
        assert "End date must be after start date" in result.errors

    def test_cursor_before_start(self) -> None:
        result = validate_recurring_config(_config(next_generation_date=date(2025, 12, 1)))
        assert "Next generation date cannot be before start date" in result.errors

    @pytest.mark.parametrize("occurrences", [0, 1001])
    def test_occurrences_out_of_bounds(self, occurrences: int) -> None:
        result = validate_recurring_config(_config(max_occurrences=occurrences))
        assert result.errors == ["Max occurrences must be between 1 and 1000"]

    def test_needs_end_or_cap(self) -> None:
        result = validate_recurring_config(_config(max_occurrences=None))
        assert result.errors == ["Either end date or max occurrences must be specified"]

    def test_collects_every_error(self) -> None:
        config = _config(frequency="hourly", interval=20, max_occurrences=None)
        result = validate_recurring_config(config)
        assert result.is_valid is False
        assert len(result.errors) == 3

    def test_input_defaults_cursor_to_start(self) -> None:
        config = RecurringConfigIn(
            frequency=" Monthly ", start_date=date(2026, 5, 1), max_occurrences=3,
        ).to_config()
        assert config.frequency == "monthly"
        assert config.interval == 1
        assert config.next_generation_date == date(2026, 5, 1)


# ─── Cron helpers ────────────────────────────────────────────────────────────


class TestCronSchedule:
    def test_describe_daily(self) -> None:
        assert describe_cron_schedule("0 9 * * *") == "Daily at 09:00"
        assert describe_cron_schedule("30 18 * * *") == "Daily at 18:30"

    def test_describe_custom(self) -> None:
        assert describe_cron_schedule("0 9 * * 1") == "Custom: 0 9 * * 1"

    def test_parse_rejects_wrong_field_count(self) -> None:
        with pytest.raises(ValueError, match="5 fields"):
            parse_cron_expression("0 9 * *")

    def test_parse_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            parse_cron_expression("0 banana * * *")

    def test_next_execution_later_today(self) -> None:
        tz = ZoneInfo("Asia/Kolkata")
        now = datetime(2026, 10, 19, 8, 0, tzinfo=tz)
        assert get_next_execution("0 9 * * *", now, "Asia/Kolkata") == datetime(
            2026, 10, 19, 9, 0, tzinfo=tz
        )

    def test_next_execution_rolls_to_tomorrow(self) -> None:
        tz = ZoneInfo("Asia/Kolkata")
        now = datetime(2026, 10, 19, 9, 0, tzinfo=tz)
        nxt = get_next_execution("0 9 * * *", now, "Asia/Kolkata")
        assert nxt - now == timedelta(days=1)

    def test_next_execution_weekly(self) -> None:
        tz = ZoneInfo("Asia/Kolkata")
        # 2026-10-19 is a Monday
        now = datetime(2026, 10, 19, 7, 0, tzinfo=tz)
        assert get_next_execution("30 6 * * 1", now, "Asia/Kolkata") == datetime(
            2026, 10, 26, 6, 30, tzinfo=tz
        )
