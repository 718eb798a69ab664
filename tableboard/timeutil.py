"""Timestamp conversion at the row-store boundary.

Internally every timestamp is an aware UTC ``datetime``. The store exchanges
ISO-8601 strings; older clients wrote epoch milliseconds, which are accepted
on the way in. ``None`` always maps to ``None``.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

TimestampLike = Union[datetime, str, int, float, None]

_CLOCK_TIME = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _from_epoch_ms(value: Union[int, float]) -> datetime:
    try:
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"Epoch milliseconds out of range: {value!r}") from exc


def parse_timestamp(value: TimestampLike) -> Optional[datetime]:
    """Convert an inbound timestamp to an aware UTC datetime.

    Raises:
        ValueError: If a present value cannot be interpreted as an instant
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = _from_epoch_ms(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            parsed = _from_epoch_ms(int(text))
        else:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Not a timestamp: {value!r}")

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError as exc:
        raise ValueError(f"Timestamp out of range: {value!r}") from exc


def to_iso(value: TimestampLike) -> Optional[str]:
    """Convert a timestamp to the store's ISO-8601 representation."""
    parsed = parse_timestamp(value)
    return parsed.isoformat() if parsed is not None else None


def is_clock_time(value: object) -> bool:
    return isinstance(value, str) and _CLOCK_TIME.match(value.strip()) is not None


def clock_time_on(day: date, value: str, tz: ZoneInfo) -> datetime:
    """Resolve an "HH:MM" value against a calendar day in the venue timezone."""
    match = _CLOCK_TIME.match(value.strip())
    if match is None:
        raise ValueError(f"Not a clock time: {value!r}")
    hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
    local = datetime.combine(day, time(hours, minutes, seconds), tzinfo=tz)
    return local.astimezone(timezone.utc)


def resolve_planned_time(
    value: TimestampLike,
    tz: ZoneInfo,
    now: Optional[datetime] = None,
) -> Optional[datetime]:
    """Normalize a reservation time ("HH:MM" today, ISO string, epoch ms) to UTC."""
    if isinstance(value, str) and is_clock_time(value):
        reference = (now or utc_now()).astimezone(tz)
        return clock_time_on(reference.date(), value, tz)
    return parse_timestamp(value)


def format_clock(value: Optional[datetime], tz: ZoneInfo) -> str:
    """Format a timestamp as "HH:MM" in the venue timezone; empty for None."""
    if value is None:
        return ""
    return value.astimezone(tz).strftime("%H:%M")
