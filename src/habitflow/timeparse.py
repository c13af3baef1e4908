from __future__ import annotations

import re
from datetime import datetime, timedelta

from ._util import _now_local


def _with_local_tz(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=_now_local().tzinfo)
    return dt.astimezone()


def parse_ts(value: str | None, now: datetime | None = None) -> datetime:
    """
    Parse flexible user time into a timezone-aware local datetime.
    Accepts:
      - None / blank / "now" -> now
      - ISO 8601 (with or without tz; naive assumed local)
      - "7:34am", "7:34 am", "19:34", "7am"
      - "2026-02-25 7:34am", "2026-02-25 19:34", "2026-02-25" (midday)
      - relative: "3 days ago", "2 hours ago", "15 minutes ago"
      - keywords: "today", "yesterday 9am", "tomorrow 7pm"
    Raises ValueError when nothing matches.
    """
    now = now or _now_local()
    if not value or not value.strip():
        return now

    raw = value.strip()
    s = raw.lower()
    if s == "now":
        return now

    # --- 1) plain date: pin to noon so the local day is unambiguous ---
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", s):
        d = datetime.strptime(s, "%Y-%m-%d")
        return d.replace(hour=12, tzinfo=now.tzinfo)

    # --- 2) ISO 8601 ---
    try:
        return _with_local_tz(datetime.fromisoformat(raw))
    except ValueError:
        pass

    # --- 3) Relative like "3 days ago" ---
    m = re.fullmatch(r"(\d+)\s*(day|days|hour|hours|minute|minutes)\s*ago", s)
    if m:
        n = int(m.group(1))
        unit = m.group(2)
        if "day" in unit:
            return now - timedelta(days=n)
        if "hour" in unit:
            return now - timedelta(hours=n)
        return now - timedelta(minutes=n)

    # --- 4) Keyword date prefix ---
    m = re.fullmatch(r"(today|yesterday|tomorrow)(?:\s+(.+))?", s)
    if m:
        base = now
        if m.group(1) == "yesterday":
            base = now - timedelta(days=1)
        elif m.group(1) == "tomorrow":
            base = now + timedelta(days=1)
        if not m.group(2):
            return base
        return _parse_time_only(m.group(2), base)

    # --- 5) Date + time formats ---
    dt_formats = [
        "%Y-%m-%d %I:%M%p",
        "%Y-%m-%d %I:%M %p",
        "%Y-%m-%d %I%p",
        "%Y-%m-%d %H:%M",
        "%Y/%m/%d %I:%M%p",
        "%Y/%m/%d %I:%M %p",
        "%Y/%m/%d %H:%M",
    ]
    for fmt in dt_formats:
        try:
            return datetime.strptime(raw, fmt).replace(tzinfo=now.tzinfo)
        except ValueError:
            continue

    # --- 6) Time-only formats (assume today) ---
    try:
        return _parse_time_only(raw, now)
    except ValueError:
        pass

    raise ValueError(
        f"Could not parse time {value!r}. Try '2026-02-25 7:34am', '7:34am', "
        f"'yesterday 9am', '3 days ago' or an ISO timestamp."
    )


def _parse_time_only(time_str: str, base_dt: datetime) -> datetime:
    """Apply a time like '9am', '7:34am', '14:30' to base_dt's date."""
    s = time_str.strip().lower()

    for fmt in ("%I:%M%p", "%I:%M %p", "%I%p", "%I %p", "%H:%M"):
        try:
            t = datetime.strptime(s, fmt)
            return base_dt.replace(hour=t.hour, minute=t.minute, second=0, microsecond=0)
        except ValueError:
            continue

    raise ValueError(f"Could not parse time-only value: {time_str!r}")
