"""Pure time arithmetic behind the `getTime` tool."""

from __future__ import annotations

import calendar
from datetime import UTC, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from task_assistant.tools.schemas import TimeFormat, TimeOffset

_RELATIVE_UNITS = (
    ("month", 30 * 24 * 3600),
    ("week", 7 * 24 * 3600),
    ("day", 24 * 3600),
    ("hour", 3600),
    ("minute", 60),
)


def apply_offset(now: datetime, offset: TimeOffset | None, tz: ZoneInfo) -> datetime:
    """Apply minutes, hours, days, weeks, then months, in that order."""
    target = now.astimezone(tz)
    if offset is None:
        return target
    if offset.minutes:
        target += timedelta(minutes=offset.minutes)
    if offset.hours:
        target += timedelta(hours=offset.hours)
    if offset.days:
        target += timedelta(days=offset.days)
    if offset.weeks:
        target += timedelta(weeks=offset.weeks)
    if offset.months:
        target = add_months(target, offset.months)
    return target


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def relative_phrase(now: datetime, target: datetime) -> str:
    """Largest whole unit only: 'in 2 days', '3 hours ago', or 'now'."""
    delta = target.astimezone(UTC) - now.astimezone(UTC)
    if delta == timedelta(0):
        return "now"
    seconds = int(abs(delta.total_seconds()))
    past = delta < timedelta(0)

    amount, unit = seconds, "second"
    for name, size in _RELATIVE_UNITS:
        if seconds >= size:
            amount, unit = seconds // size, name
            break

    label = f"{amount} {unit}{'s' if amount != 1 else ''}"
    return f"{label} ago" if past else f"in {label}"


def format_time(now: datetime, target: datetime, fmt: TimeFormat) -> str:
    if fmt == "date":
        return target.strftime("%A, %d %B %Y")
    if fmt == "time":
        return target.strftime("%I:%M:%S %p")
    if fmt == "relative":
        return relative_phrase(now, target)
    return target.strftime("%A, %d %B %Y, %I:%M:%S %p")


def get_time(
    *,
    now: datetime,
    offset: TimeOffset | None,
    fmt: TimeFormat,
    timezone: str,
) -> dict[str, Any]:
    tz = ZoneInfo(timezone)
    target = apply_offset(now, offset, tz)
    return {
        "timestamp": target.astimezone(UTC).isoformat(timespec="milliseconds").replace(
            "+00:00", "Z"
        ),
        "formatted": format_time(now, target, fmt),
        "timezone": f"{timezone} ({target.tzname()})",
    }
