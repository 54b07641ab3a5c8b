"""
Unit tests for datetime utilities.

Tests conversion between practice wall-clock time and stored UTC instants.
"""

import pytest
from datetime import date, datetime, time, timezone

from utils.datetime_utils import (
    APP_TZ,
    WallClock,
    ensure_utc,
    instant_to_local_date,
    instant_to_wall_clock,
    local_to_instant,
    parse_date_string,
    parse_datetime_to_instant,
    parse_time_of_day,
    weekday_sunday_first,
)


class TestWallClockConversion:
    """Test local wall-clock to instant conversion and back."""

    def test_local_to_instant_returns_utc(self):
        """09:00 in Sao Paulo (UTC-3) is 12:00 UTC."""
        instant = local_to_instant(date(2026, 3, 2), "09:00")

        assert instant.tzinfo == timezone.utc
        assert instant == datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    def test_local_to_instant_accepts_time_object(self):
        assert local_to_instant(date(2026, 3, 2), time(9, 0)) == local_to_instant(date(2026, 3, 2), "09:00")

    def test_round_trip_preserves_wall_clock(self):
        """Normalizing then denormalizing yields the same weekday and time."""
        instant = local_to_instant(date(2026, 3, 2), "18:30")

        assert instant_to_wall_clock(instant) == WallClock(day_of_week=1, time="18:30")

    def test_wall_clock_of_naive_instant_treats_it_as_utc(self):
        """Values read back from SQLite are naive UTC."""
        naive = datetime(2026, 3, 2, 12, 0)

        assert instant_to_wall_clock(naive) == WallClock(1, "09:00")

    def test_local_date_can_differ_from_utc_date(self):
        """01:00 UTC is still the previous evening locally."""
        instant = datetime(2026, 3, 3, 1, 0, tzinfo=timezone.utc)

        assert instant_to_local_date(instant) == date(2026, 3, 2)

    def test_app_tz_is_configured_zone(self):
        assert str(APP_TZ) == "America/Sao_Paulo"


class TestEnsureUtc:
    """Test ensure_utc function."""

    def test_naive_datetime_is_marked_utc(self):
        result = ensure_utc(datetime(2026, 1, 1, 10, 0))

        assert result.tzinfo == timezone.utc
        assert result.hour == 10

    def test_aware_datetime_is_converted(self):
        local = datetime(2026, 1, 1, 10, 0, tzinfo=APP_TZ)

        assert ensure_utc(local).hour == 13

    def test_none_returns_none(self):
        assert ensure_utc(None) is None


class TestParsing:
    """Test parsing helpers."""

    def test_weekday_sunday_first(self):
        assert weekday_sunday_first(date(2026, 3, 1)) == 0  # Sunday
        assert weekday_sunday_first(date(2026, 3, 2)) == 1  # Monday
        assert weekday_sunday_first(date(2026, 3, 7)) == 6  # Saturday

    def test_parse_time_of_day(self):
        assert parse_time_of_day("09:05") == time(9, 5)

    @pytest.mark.parametrize("value", ["", "25:00", "10:60", "ten", "10", "9:05", "09:5", "09:00:99", "09:00:00"])
    def test_parse_time_of_day_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            parse_time_of_day(value)

    def test_parse_naive_string_is_local_time(self):
        assert parse_datetime_to_instant("2026-03-02T09:00:00") == datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    def test_parse_string_with_offset(self):
        assert parse_datetime_to_instant("2026-03-02T12:00:00Z") == datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    def test_parse_date_string_normalizes(self):
        assert parse_date_string("2026/3/2") == date(2026, 3, 2)
        assert parse_date_string("2026-03-02") == date(2026, 3, 2)

    def test_parse_date_string_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_date_string("next monday")
