"""Tests for timeparse.parse_ts."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from habitflow.timeparse import parse_ts

TZ = timezone(timedelta(hours=-5))
NOW = datetime(2026, 2, 25, 15, 45, 10, tzinfo=TZ)


def _parse(s):
    return parse_ts(s, now=NOW)


# ---- None / blank ----


def test_none_returns_now():
    assert _parse(None) == NOW


def test_blank_returns_now():
    assert _parse("  ") == NOW


def test_now_keyword():
    assert _parse("Now") == NOW


def test_none_without_now_is_aware():
    assert parse_ts(None).tzinfo is not None


# ---- plain date ----


def test_plain_date_is_noon():
    result = _parse("2026-01-03")
    assert (result.year, result.month, result.day, result.hour) == (2026, 1, 3, 12)
    assert result.tzinfo is TZ


# ---- ISO 8601 ----


def test_iso_with_timezone():
    result = _parse("2026-02-25T07:34:00-05:00")
    assert result.utcoffset() is not None
    assert result.astimezone(TZ).hour == 7


def test_iso_naive_assumed_local():
    result = _parse("2026-02-25T07:34:00")
    assert (result.year, result.month, result.day) == (2026, 2, 25)
    assert (result.hour, result.minute) == (7, 34)
    assert result.tzinfo is not None


# ---- Relative ----


def test_relative_days_ago():
    assert _parse("3 days ago") == NOW - timedelta(days=3)


def test_relative_hours_ago():
    assert _parse("2 hours ago") == NOW - timedelta(hours=2)


def test_relative_minutes_ago():
    assert _parse("15 minutes ago") == NOW - timedelta(minutes=15)


def test_relative_1_day_ago():
    assert _parse("1 day ago") == NOW - timedelta(days=1)


# ---- Keyword date prefix ----


def test_today_alone():
    assert _parse("today") == NOW


def test_today_with_time():
    result = _parse("today 9am")
    assert result.date() == NOW.date()
    assert (result.hour, result.minute) == (9, 0)


def test_yesterday_with_time():
    result = _parse("yesterday 9am")
    assert result.date() == (NOW - timedelta(days=1)).date()
    assert result.hour == 9


def test_tomorrow_with_time():
    result = _parse("tomorrow 7pm")
    assert result.date() == (NOW + timedelta(days=1)).date()
    assert result.hour == 19


# ---- Time-only (assumes today) ----


def test_time_only_hhmm_ampm():
    result = _parse("7:34am")
    assert result.date() == NOW.date()
    assert (result.hour, result.minute, result.second) == (7, 34, 0)


def test_time_only_24h():
    result = _parse("14:30")
    assert (result.hour, result.minute) == (14, 30)


def test_time_only_hour_only():
    assert _parse("9am").hour == 9


def test_time_only_with_space():
    assert _parse("9 pm").hour == 21


# ---- Date + time formats ----


def test_date_plus_time_24h():
    result = _parse("2026-02-20 14:30")
    assert (result.month, result.day, result.hour, result.minute) == (2, 20, 14, 30)


def test_date_plus_time_ampm():
    result = _parse("2026-02-20 7:34am")
    assert (result.day, result.hour, result.minute) == (20, 7, 34)


def test_slash_date_plus_time():
    result = _parse("2026/02/20 7:34 pm")
    assert (result.day, result.hour) == (20, 19)


# ---- Invalid input ----


def test_invalid_raises():
    with pytest.raises(ValueError):
        _parse("not a time at all blah blah")
