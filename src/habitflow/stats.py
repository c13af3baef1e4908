"""
Streaks and per-day aggregates.

All grouping is by the entry's stored dateStr, never by re-deriving the day
from the timestamp, so a later timezone change cannot move an entry.
"""

from __future__ import annotations

import calendar
import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ._util import round1, shift_date_str, today_str
from .models import Entry, Tracker

TREND_DEAD_ZONE_PCT = 5.0
TREND_MIN_POINTS = 10


# -------------------------
# Streaks
# -------------------------


def get_distinct_dates_desc(
    entries: Iterable[Entry],
    tracker_id: int | None = None,
    limit: int = 365,
) -> list[str]:
    days = {e.date_str for e in entries if tracker_id is None or e.tracker_id == tracker_id}
    return sorted(days, reverse=True)[:limit]


def compute_current_streak(dates: Iterable[str], today: str | None = None) -> int:
    """
    Consecutive days ending today, walking a newest-first list of distinct
    dates. No grace day: if today has no entry the streak is 0. Dates after
    today are skipped; any other date newer than the day being looked for
    (a repeated day) stops the walk.
    """
    today = today or today_str()
    expected = today
    streak = 0
    for d in sorted(dates, reverse=True):
        if d > today:
            continue
        if d != expected:
            # a missing or repeated day ends it
            break
        streak += 1
        expected = shift_date_str(expected, -1)
    return streak


def compute_best_streak(dates: Iterable[str]) -> int:
    ordered = sorted(set(dates))
    if not ordered:
        return 0
    best = run = 1
    for prev, cur in zip(ordered, ordered[1:]):
        if shift_date_str(prev, 1) == cur:
            run += 1
            best = max(best, run)
        else:
            run = 1
    return best


# -------------------------
# Per-day aggregates
# -------------------------


def in_range(entries: Iterable[Entry], start: str | None = None, end: str | None = None) -> list[Entry]:
    """Entries with start <= dateStr <= end (string compare on YYYY-MM-DD)."""
    return [
        e for e in entries
        if (start is None or e.date_str >= start) and (end is None or e.date_str <= end)
    ]


def daily_counts(entries: Iterable[Entry]) -> dict[str, int]:
    out: dict[str, int] = {}
    for e in entries:
        out[e.date_str] = out.get(e.date_str, 0) + 1
    return dict(sorted(out.items()))


def daily_values(entries: Iterable[Entry], how: str = "sum") -> dict[str, float]:
    """Per-day aggregate of entry values ('sum' or 'mean'); entries without a value are skipped."""
    if how not in ("sum", "mean"):
        raise ValueError(f"how must be 'sum' or 'mean', got {how!r}")
    buckets: dict[str, list[float]] = {}
    for e in entries:
        if e.value is None:
            continue
        buckets.setdefault(e.date_str, []).append(float(e.value))
    out: dict[str, float] = {}
    for day in sorted(buckets):
        vals = buckets[day]
        out[day] = sum(vals) if how == "sum" else sum(vals) / len(vals)
    return out


def rolling_average(values: Sequence[float], window: int = 7) -> list[float | None]:
    if window <= 0:
        raise ValueError("window must be > 0")
    out: list[float | None] = [None] * len(values)
    if len(values) < window:
        return out

    running = sum(values[:window])
    out[window - 1] = running / window
    for i in range(window, len(values)):
        running += values[i] - values[i - window]
        out[i] = running / window
    return out


def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def std_deviation(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for an empty series."""
    if not values:
        return 0.0
    m = mean(values)
    return math.sqrt(sum((v - m) ** 2 for v in values) / len(values))


def compute_trend(
    values: Sequence[float],
    dead_zone: float = TREND_DEAD_ZONE_PCT,
    min_points: int = TREND_MIN_POINTS,
) -> str:
    """
    'up' / 'down' / 'stable' from a chronological series: newer half vs
    older half, as a percent change, with a dead zone around zero.
    """
    if len(values) < min_points:
        return "stable"
    half = len(values) // 2
    older = values[: len(values) - half]
    recent = values[len(values) - half :]
    older_avg = mean(older)
    recent_avg = mean(recent)
    if older_avg == 0:
        return "up" if recent_avg > 0 else "stable"
    pct = (recent_avg - older_avg) / abs(older_avg) * 100
    if pct > dead_zone:
        return "up"
    if pct < -dead_zone:
        return "down"
    return "stable"


# -------------------------
# Summaries
# -------------------------


@dataclass
class TrackerStats:
    total_entries: int
    average_per_day: float
    std_deviation: float
    trend: str
    current_streak: int
    best_streak: int


def tracker_stats(
    entries: Iterable[Entry],
    start: str | None = None,
    end: str | None = None,
    today: str | None = None,
) -> TrackerStats:
    """
    Descriptive stats for one tracker's entries within [start, end].
    A day's figure is the sum of its values, an entry with no value
    counting as 1. Streaks look at the whole history, not just the window.
    """
    entries = list(entries)
    window = in_range(entries, start, end)

    per_day: dict[str, float] = {}
    for e in window:
        v = e.value if e.value else 1.0
        per_day[e.date_str] = per_day.get(e.date_str, 0.0) + v
    series = [per_day[d] for d in sorted(per_day)]

    dates = get_distinct_dates_desc(entries)
    return TrackerStats(
        total_entries=len(window),
        average_per_day=round1(mean(series)),
        std_deviation=round1(std_deviation(series)),
        trend=compute_trend(series),
        current_streak=compute_current_streak(dates, today),
        best_streak=compute_best_streak(dates),
    )


@dataclass
class DashboardStats:
    current_streak: int
    best_streak: int
    total_activities: int
    total_entries_month: int


def month_bounds(year: int, month: int) -> tuple[str, str]:
    """First and last dateStr of a 1-based calendar month."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1-12, got {month}")
    last = calendar.monthrange(year, month)[1]
    return f"{year:04d}-{month:02d}-01", f"{year:04d}-{month:02d}-{last:02d}"


def dashboard_stats(
    trackers: Iterable[Tracker],
    entries: Iterable[Entry],
    today: str | None = None,
) -> DashboardStats:
    today = today or today_str()
    entries = list(entries)
    start, end = month_bounds(int(today[:4]), int(today[5:7]))
    dates = get_distinct_dates_desc(entries, limit=365)
    return DashboardStats(
        current_streak=compute_current_streak(dates, today),
        best_streak=compute_best_streak(dates),
        total_activities=sum(1 for t in trackers if not t.archived),
        total_entries_month=len(in_range(entries, start, end)),
    )


@dataclass
class CalendarMonth:
    year: int
    month: int
    entries_by_date: dict[str, list[Entry]] = field(default_factory=dict)
    active_days: list[int] = field(default_factory=list)


def calendar_month(entries: Iterable[Entry], year: int, month: int) -> CalendarMonth:
    start, end = month_bounds(year, month)
    by_date: dict[str, list[Entry]] = {}
    for e in sorted(in_range(entries, start, end), key=lambda e: e.timestamp):
        by_date.setdefault(e.date_str, []).append(e)
    days = sorted({int(d[8:10]) for d in by_date})
    return CalendarMonth(year, month, dict(sorted(by_date.items())), days)
