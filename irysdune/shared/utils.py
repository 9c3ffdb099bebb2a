#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Utility Functions for the IrysDune aggregator
Day-window arithmetic (numpy datetime64), timestamp/address normalization and
small series helpers used by chart consumers.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np

from .models import DaysWindow, MonthsWindow, TimeSeriesPoint

MS_PER_DAY = 24 * 60 * 60 * 1000
SECONDS_THRESHOLD = 10_000_000_000  # below this a raw timestamp is in seconds
DAYS_PER_MONTH_FRACTION = 30

DateWindow = Union[MonthsWindow, DaysWindow]


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def utc_day(timestamp_ms: int) -> np.datetime64:
    """Calendar day (UTC) containing an epoch-ms timestamp"""
    return np.datetime64(int(timestamp_ms), "ms").astype("datetime64[D]")


def day_string(value: Union[int, np.datetime64]) -> str:
    """
    Format a UTC day as YYYY-MM-DD

    Args:
        value: epoch milliseconds or a datetime64 value
    """
    if not isinstance(value, np.datetime64):
        value = utc_day(value)
    return str(value.astype("datetime64[D]"))


def day_start_ms(day: Union[str, np.datetime64]) -> int:
    """Epoch ms at 00:00 UTC of `day`"""
    return int(np.datetime64(day, "D").astype("datetime64[ms]").astype(np.int64))


def day_range(start_ms: int, end_ms: int) -> np.ndarray:
    """Every UTC day touched by [start_ms, end_ms], inclusive, ascending"""
    if end_ms < start_ms:
        return np.array([], dtype="datetime64[D]")
    return np.arange(utc_day(start_ms), utc_day(end_ms) + np.timedelta64(1, "D"), dtype="datetime64[D]")


def subtract_months(moment: datetime, months: float) -> datetime:
    """
    Move `moment` back by calendar months.

    Whole months keep the day of month (clamped to the month length); the
    fractional part is converted at 30 days per month and floored to whole days.
    """
    whole = int(math.floor(months))
    frac_days = int(math.floor((months - whole) * DAYS_PER_MONTH_FRACTION))
    year, month = moment.year, moment.month - whole
    while month <= 0:
        month += 12
        year -= 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day) - timedelta(days=frac_days)


@dataclass(frozen=True)
class TimeWindow:
    """Absolute query window in epoch ms"""
    start_ms: int
    end_ms: int

    def __post_init__(self):
        if self.start_ms > self.end_ms:
            raise ValueError("window start must not be after end")

    @property
    def days(self) -> np.ndarray:
        return day_range(self.start_ms, self.end_ms)

    @property
    def day_strings(self) -> List[str]:
        return [str(d) for d in self.days]

    def contains(self, timestamp_ms: int) -> bool:
        return self.start_ms <= timestamp_ms <= self.end_ms


def window_for_months(months: float, end_ms: int) -> TimeWindow:
    """[end - months calendar months, end]"""
    end_dt = datetime.fromtimestamp(end_ms / 1000.0, tz=timezone.utc)
    start_dt = subtract_months(end_dt, months)
    return TimeWindow(start_ms=int(start_dt.timestamp() * 1000), end_ms=end_ms)


def window_for_days(days: int, end_ms: int) -> TimeWindow:
    """The `days` calendar days ending with the day of `end_ms`, starting at 00:00 UTC"""
    first_day = utc_day(end_ms) - np.timedelta64(days - 1, "D")
    return TimeWindow(start_ms=day_start_ms(first_day), end_ms=end_ms)


def resolve_window(date_range: Optional[DateWindow], end_ms: Optional[int] = None, default_months: float = 6) -> TimeWindow:
    """Turn a relative window into absolute bounds ending at `end_ms` (default now)."""
    end = now_ms() if end_ms is None else int(end_ms)
    if isinstance(date_range, DaysWindow):
        return window_for_days(date_range.days, end)
    months = date_range.months if isinstance(date_range, MonthsWindow) else default_months
    return window_for_months(months, end)


def normalize_timestamp_ms(raw: Any) -> Optional[int]:
    """
    Parse a tag-index timestamp into epoch ms.

    Values below 10^10 are taken as seconds. Returns None for NaN, non-numeric
    or non-positive input.
    """
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    value = int(value)
    if value <= 0:
        return None
    if value < SECONDS_THRESHOLD:
        value *= 1000
    return value


def normalize_address(addr: str) -> str:
    if not isinstance(addr, str):
        raise ValueError(f"address must be a string, got: {type(addr)}")
    addr = addr.strip().lower()
    if not addr.startswith("0x"):
        addr = "0x" + addr
    if len(addr) != 42:
        raise ValueError(f"invalid address format: {addr}")
    int(addr[2:], 16)
    return addr


def parse_hex_int(value: Optional[Any]) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(str(value), 16)


def to_cumulative(series: Iterable[TimeSeriesPoint]) -> List[TimeSeriesPoint]:
    """Running totals over a daily series, ordered by timestamp"""
    ordered = sorted(series, key=lambda p: p.timestamp)
    if not ordered:
        return []
    totals = np.cumsum([p.count for p in ordered])
    return [TimeSeriesPoint(timestamp=p.timestamp, count=int(t)) for p, t in zip(ordered, totals)]


def total_activity(series_map: Dict[str, List[Any]]) -> int:
    return int(sum(p.count for series in series_map.values() for p in series))


def growth_rate(series: List[Any], window: int = 7) -> float:
    """
    Percent change of the last `window` samples against the `window` before.

    A zero baseline yields 100.0 when there is recent activity, else 0.0.
    """
    if len(series) < 2:
        return 0.0
    counts = np.array([p.count for p in series], dtype=float)
    recent = counts[-window:].sum()
    previous = counts[-2 * window:-window].sum() if len(counts) > window else 0.0
    if previous == 0:
        return 100.0 if recent > 0 else 0.0
    return float((recent - previous) / previous * 100.0)
