"""Shared low-level helpers used by the engines, cli.py and gui.py."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta


def _now_local() -> datetime:
    return datetime.now().astimezone()


def _now_ms() -> int:
    return int(_now_local().timestamp() * 1000)


def today_str() -> str:
    return _now_local().date().isoformat()


def date_str_from_ms(timestamp_ms: int) -> str:
    """Local calendar day (YYYY-MM-DD) of an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000).astimezone().date().isoformat()


def ms_from_datetime(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=_now_local().tzinfo)
    return int(dt.timestamp() * 1000)


def shift_date_str(value: str, days: int) -> str:
    return (date.fromisoformat(value) + timedelta(days=days)).isoformat()


def date_range(start: str, end: str) -> list[str]:
    """Every calendar day from start to end, inclusive. Empty if start > end."""
    d0 = date.fromisoformat(start)
    d1 = date.fromisoformat(end)
    out: list[str] = []
    while d0 <= d1:
        out.append(d0.isoformat())
        d0 += timedelta(days=1)
    return out


def round_half_up(x: float) -> int:
    # halves go up: -2.5 -> -2, 2.5 -> 3
    return int(math.floor(x + 0.5))


def round1(x: float) -> float:
    return math.floor(x * 10 + 0.5) / 10


def clamp(lo: float, hi: float, v: float) -> float:
    return max(lo, min(hi, v))


def _fmt_time(dt: datetime) -> str:
    # Windows-safe formatting
    try:
        return dt.strftime("%-I:%M %p")
    except ValueError:
        return dt.strftime("%I:%M %p").lstrip("0")
