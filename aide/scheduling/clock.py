"""Lenient parsing of the date/time strings a model emits."""
from __future__ import annotations

import re
from datetime import date, time
from typing import Any

MINUTES_PER_DAY = 24 * 60

_CLOCK_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$")
_DAY_RE = re.compile(r"^\s*(\d{4})-(\d{2})-(\d{2})\s*$")


def parse_clock(value: Any) -> int | None:
    """Return minutes since midnight for an ``HH:MM`` string, or None if unusable."""
    if not isinstance(value, str):
        return None
    match = _CLOCK_RE.match(value)
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        return None
    return hour * 60 + minute


def parse_day(value: Any) -> date | None:
    """Return the date for an ISO ``YYYY-MM-DD`` string, or None if unusable."""
    if not isinstance(value, str):
        return None
    match = _DAY_RE.match(value)
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    return time(hour=minutes // 60, minute=minutes % 60)
