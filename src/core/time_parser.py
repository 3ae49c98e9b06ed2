"""
Planner Agent — Time Normalizer.

Turns the loosely formatted times the language model sends ("3:00 PM",
"15:00", "1500", "3pm") into absolute timestamps for schedule items.

Availability over strictness: unparsable input never fails a request.
Bad components fall back to noon, a missing or unusable end falls back to
start + 1 hour, and every fallback is reported as a human-readable warning
so the assistant can mention it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo

logger = logging.getLogger(__name__)

DEFAULT_HOUR = 12
DEFAULT_MINUTE = 0
DEFAULT_DURATION = timedelta(hours=1)

_DIGITS_RE = re.compile(r"^\d+$")
_HOUR_MERIDIEM_RE = re.compile(r"^(\d{1,2})\s*([ap])\.?\s*m\.?$", re.IGNORECASE)
_LEADING_INT_RE = re.compile(r"^\s*(-?\d+)")


@dataclass
class ClockTime:
    """A wall-clock time parsed from a client string."""

    hour: int
    minute: int
    on_date: date | None = None   # set when the input was a full ISO datetime
    fallback: bool = False        # True when any component fell back to a default


@dataclass
class TimeRange:
    """Normalized start/end pair. Invariant: end > start."""

    start: datetime
    end: datetime
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Elapsed-time arithmetic
# ---------------------------------------------------------------------------


def add_elapsed(moment: datetime, delta: timedelta) -> datetime:
    """Add real elapsed time to moment, across clock changes in its zone."""
    if moment.tzinfo is None:
        return moment + delta
    return (moment.astimezone(timezone.utc) + delta).astimezone(moment.tzinfo)


def elapsed_between(start: datetime, end: datetime) -> timedelta:
    """Real time from start to end; aware values are compared in UTC."""
    if start.tzinfo is None or end.tzinfo is None:
        return end - start
    return end.astimezone(timezone.utc) - start.astimezone(timezone.utc)


def resolve_wall_clock(moment: datetime) -> datetime:
    """Move a wall-clock time that a spring-forward gap skips to the instant it names."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).astimezone(moment.tzinfo)


def _leading_int(text: str) -> int | None:
    """Integer prefix of text ("15:00" gives 15); None when absent."""
    match = _LEADING_INT_RE.match(text)
    return int(match.group(1)) if match else None


def _validated(hour: int | None, minute: int | None) -> tuple[int, int, bool]:
    """Replace out-of-range components with defaults, independently."""
    fallback = False
    if hour is None or not 0 <= hour <= 23:
        hour = DEFAULT_HOUR
        fallback = True
    if minute is None or not 0 <= minute <= 59:
        minute = DEFAULT_MINUTE
        fallback = True
    return hour, minute, fallback


def parse_clock_time(value: str | None) -> ClockTime | None:
    """Parse "h:mm AM/PM", "HH:mm", an HHMM digit run, "3pm" or an ISO datetime.

    Returns None for empty input. Unrecognized formats and out-of-range
    components return a ClockTime flagged as fallback (hour 12, minute 0
    for the bad parts).
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    if "T" in text and text[:4].isdigit():
        try:
            parsed = datetime.fromisoformat(text)
            return ClockTime(hour=parsed.hour, minute=parsed.minute, on_date=parsed.date())
        except ValueError:
            logger.debug("Not an ISO datetime: %s", text)

    lowered = text.lower()

    if ":" in text:
        hour_part, minute_part = text.split(":")[:2]
        hour = _leading_int(hour_part)
        minute_digits = re.sub(r"[^\d]", "", minute_part)
        minute = int(minute_digits) if minute_digits else None

        is_pm = "pm" in lowered or "p.m." in lowered
        is_am = "am" in lowered or "a.m." in lowered
        if hour is not None:
            if is_pm and hour < 12:
                hour += 12
            elif is_am and hour == 12:
                hour = 0

        hour, minute, fallback = _validated(hour, minute)
        return ClockTime(hour=hour, minute=minute, fallback=fallback)

    if _DIGITS_RE.match(text):
        number = int(text)
        if len(text) <= 2:
            hour, minute = number, 0
        else:
            hour, minute = number // 100, number % 100
        hour, minute, fallback = _validated(hour, minute)
        return ClockTime(hour=hour, minute=minute, fallback=fallback)

    match = _HOUR_MERIDIEM_RE.match(text)
    if match:
        hour = int(match.group(1))
        if match.group(2).lower() == "p" and hour < 12:
            hour += 12
        elif match.group(2).lower() == "a" and hour == 12:
            hour = 0
        hour, minute, fallback = _validated(hour, 0)
        return ClockTime(hour=hour, minute=minute, fallback=fallback)

    logger.warning("Unrecognized time format: '%s'", text)
    return ClockTime(hour=DEFAULT_HOUR, minute=DEFAULT_MINUTE, fallback=True)


def parse_date(value: str | None) -> date | None:
    """Parse a YYYY-MM-DD string (a trailing time part is ignored); None if invalid."""
    if not value:
        return None
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.warning("Invalid date: '%s'", text)
        return None


def normalize_time_range(
    target_date: date | None,
    start_str: str | None,
    end_str: str | None = None,
    tz: tzinfo | None = None,
    today: date | None = None,
) -> TimeRange:
    """Combine a calendar date with start/end time strings into a TimeRange.

    Args:
        target_date: Calendar date of the item; None means `today`.
        start_str: Start time in any supported format.
        end_str: Optional end time. Omitted or unparsable → start + 1 hour.
        tz: Zone attached to the resulting timestamps.
        today: Fallback date when target_date is None (defaults to the
            current date in tz).

    End is forced to start + 1 hour whenever it does not come after start.
    """
    warnings: list[str] = []

    start_clock = parse_clock_time(start_str)
    if start_clock is None:
        warnings.append(
            f"No start time given; defaulted to {DEFAULT_HOUR:02d}:{DEFAULT_MINUTE:02d}."
        )
        start_clock = ClockTime(hour=DEFAULT_HOUR, minute=DEFAULT_MINUTE, fallback=True)
    elif start_clock.fallback:
        warnings.append(
            f"Could not fully read start time '{start_str}'; "
            f"used {start_clock.hour:02d}:{start_clock.minute:02d}."
        )

    day = target_date or start_clock.on_date or today or datetime.now(tz).date()
    wall_start = datetime(day.year, day.month, day.day, start_clock.hour, start_clock.minute, tzinfo=tz)
    start = resolve_wall_clock(wall_start)
    if start.replace(tzinfo=None) != wall_start.replace(tzinfo=None):
        warnings.append(
            f"{wall_start:%H:%M} does not exist on {day.isoformat()} (clock change); "
            f"used {start:%H:%M}."
        )

    end_clock = parse_clock_time(end_str)
    if end_clock is None:
        end = add_elapsed(start, DEFAULT_DURATION)
    elif end_clock.fallback:
        warnings.append(f"Could not read end time '{end_str}'; set it to one hour after start.")
        end = add_elapsed(start, DEFAULT_DURATION)
    else:
        end_day = end_clock.on_date if (end_clock.on_date and not target_date) else day
        end = resolve_wall_clock(datetime(
            end_day.year, end_day.month, end_day.day, end_clock.hour, end_clock.minute, tzinfo=tz,
        ))
        if elapsed_between(start, end) <= timedelta(0):
            logger.debug("End %s not after start %s; using start + 1h", end, start)
            end = add_elapsed(start, DEFAULT_DURATION)

    for warning in warnings:
        logger.warning("Time normalization: %s", warning)

    return TimeRange(start=start, end=end, warnings=warnings)


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------


def format_clock(moment: datetime) -> str:
    """Format a timestamp as a 12-hour wall-clock string, e.g. "3:00 PM"."""
    hour = moment.hour % 12 or 12
    meridiem = "PM" if moment.hour >= 12 else "AM"
    return f"{hour}:{moment.minute:02d} {meridiem}"


def to_local(moment: datetime, tz: tzinfo | None) -> datetime:
    """Convert an aware timestamp into tz; naive timestamps are returned unchanged."""
    if tz is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(tz)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a stored ISO timestamp; None when missing or malformed."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        logger.warning("Malformed stored timestamp: '%s'", value)
        return None
