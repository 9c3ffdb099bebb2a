#!/usr/bin/env python3
"""
Unit tests for day-window and normalization utilities
"""
import math
import pytest
from datetime import datetime, timezone
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from irysdune.shared.models import DaysWindow, MonthsWindow, TimeSeriesPoint
from irysdune.shared.utils import (
    TimeWindow,
    day_range,
    day_start_ms,
    day_string,
    growth_rate,
    normalize_address,
    normalize_timestamp_ms,
    parse_hex_int,
    resolve_window,
    subtract_months,
    to_cumulative,
    total_activity,
)


def ms(year, month, day, hour=0):
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp() * 1000)


class TestDayWindows:
    """Test calendar-day window arithmetic"""

    def test_day_range_is_inclusive(self):
        days = day_range(ms(2024, 1, 1, 12), ms(2024, 1, 30))
        assert len(days) == 30
        assert str(days[0]) == "2024-01-01"
        assert str(days[-1]) == "2024-01-30"

    def test_day_range_empty_when_reversed(self):
        assert len(day_range(ms(2024, 1, 2), ms(2024, 1, 1))) == 0

    def test_day_string_and_start(self):
        assert day_string(ms(2024, 2, 29, 23)) == "2024-02-29"
        assert day_start_ms("2024-02-29") == ms(2024, 2, 29)

    def test_days_window_covers_exact_days(self):
        window = resolve_window(DaysWindow(5), end_ms=ms(2024, 3, 10, 15))
        assert window.start_ms == ms(2024, 3, 6)
        assert window.day_strings == ["2024-03-06", "2024-03-07", "2024-03-08", "2024-03-09", "2024-03-10"]

    def test_months_window_uses_calendar_months(self):
        window = resolve_window(MonthsWindow(1), end_ms=ms(2024, 3, 1, 12))
        assert window.start_ms == ms(2024, 2, 1, 12)
        assert len(window.days) == 30

    def test_fractional_month_is_thirty_day_fraction(self):
        window = resolve_window(MonthsWindow(0.25), end_ms=ms(2024, 3, 10))
        assert window.start_ms == ms(2024, 3, 3)

    def test_default_months_when_no_range(self):
        window = resolve_window(None, end_ms=ms(2024, 7, 15), default_months=6)
        assert window.start_ms == ms(2024, 1, 15)

    def test_subtract_months_clamps_day(self):
        moment = datetime(2024, 3, 31, tzinfo=timezone.utc)
        assert subtract_months(moment, 1) == datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert subtract_months(moment, 13) == datetime(2023, 2, 28, tzinfo=timezone.utc)

    def test_time_window_validation(self):
        with pytest.raises(ValueError):
            TimeWindow(start_ms=10, end_ms=5)
        window = TimeWindow(start_ms=0, end_ms=10)
        assert window.contains(0) and window.contains(10) and not window.contains(11)


class TestNormalization:
    """Test timestamp and address normalization"""

    def test_seconds_are_scaled(self):
        assert normalize_timestamp_ms(1_700_000_000) == 1_700_000_000_000
        assert normalize_timestamp_ms("1700000000") == 1_700_000_000_000

    def test_milliseconds_kept(self):
        assert normalize_timestamp_ms(1_700_000_000_123) == 1_700_000_000_123

    @pytest.mark.parametrize("raw", [None, "abc", float("nan"), math.inf, 0, -5])
    def test_invalid_timestamps(self, raw):
        assert normalize_timestamp_ms(raw) is None

    def test_normalize_address(self):
        raw = "AbCdEf0123456789abcdef0123456789ABCDEF01"
        assert normalize_address(raw) == "0xabcdef0123456789abcdef0123456789abcdef01"
        with pytest.raises(ValueError):
            normalize_address("0x1234")
        with pytest.raises(ValueError):
            normalize_address("0x" + "zz" * 20)

    def test_parse_hex_int(self):
        assert parse_hex_int("0x10") == 16
        assert parse_hex_int(None) == 0
        assert parse_hex_int(7) == 7


class TestSeriesHelpers:
    """Test consumer-side series helpers"""

    def test_to_cumulative(self):
        series = [TimeSeriesPoint(2, 3), TimeSeriesPoint(1, 1), TimeSeriesPoint(3, 0)]
        assert [(p.timestamp, p.count) for p in to_cumulative(series)] == [(1, 1), (2, 4), (3, 4)]
        assert to_cumulative([]) == []

    def test_total_activity(self):
        assert total_activity({"a": [TimeSeriesPoint(1, 2)], "b": [TimeSeriesPoint(1, 3), TimeSeriesPoint(2, 1)]}) == 6

    def test_growth_rate(self):
        previous = [TimeSeriesPoint(i, 1) for i in range(7)]
        recent = [TimeSeriesPoint(7 + i, 2) for i in range(7)]
        assert growth_rate(previous + recent) == pytest.approx(100.0)

    def test_growth_rate_zero_baseline(self):
        zeros = [TimeSeriesPoint(i, 0) for i in range(7)]
        assert growth_rate(zeros + [TimeSeriesPoint(8, 5)]) == 100.0
        assert growth_rate(zeros + zeros) == 0.0
        assert growth_rate([TimeSeriesPoint(1, 1)]) == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
