"""
Planner Agent — Recurrence rules.

A deliberately small subset of iCalendar RRULE: FREQ, INTERVAL and BYDAY.
Rules are parsed once (with icalendar's vRecur) into a typed RecurrenceRule
at the store boundary; anything outside the subset is ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING

from icalendar import vRecur

if TYPE_CHECKING:
    from src.data.models import ScheduleItem

logger = logging.getLogger(__name__)


class Frequency(Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


DAY_NAME_TO_CODE: dict[str, str] = {
    "Monday": "MO",
    "Tuesday": "TU",
    "Wednesday": "WE",
    "Thursday": "TH",
    "Friday": "FR",
    "Saturday": "SA",
    "Sunday": "SU",
}
DAY_CODE_TO_NAME: dict[str, str] = {code: name for name, code in DAY_NAME_TO_CODE.items()}

# date.weekday() index → two-letter code
_WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")


class RecurrenceRuleError(ValueError):
    """Raised when a recurrence rule string is outside the supported subset."""


@dataclass(frozen=True)
class RecurrenceRule:
    """Typed form of "FREQ=<F>;INTERVAL=<n>[;BYDAY=MO,WE]"."""

    frequency: Frequency
    interval: int = 1
    by_day: tuple[str, ...] = field(default_factory=tuple)

    def to_rrule(self) -> str:
        rule = f"FREQ={self.frequency.value};INTERVAL={self.interval}"
        if self.by_day:
            rule += f";BYDAY={','.join(self.by_day)}"
        return rule

    @property
    def day_names(self) -> list[str]:
        return [DAY_CODE_TO_NAME.get(code, code) for code in self.by_day]


def day_name_to_code(name: str) -> str:
    """Map "Monday"/"monday"/"Mon"/"MO" to "MO"; unknown names pass through upper-cased."""
    cleaned = name.strip()
    if cleaned.upper() in DAY_CODE_TO_NAME:
        return cleaned.upper()
    for full_name, code in DAY_NAME_TO_CODE.items():
        if full_name.lower().startswith(cleaned.lower()[:3]) and len(cleaned) >= 3:
            return code
    return cleaned.upper()


def build_recurrence_rule(
    frequency: str | Frequency,
    interval: int | None = 1,
    repeat_day_names: list[str] | None = None,
) -> str:
    """Build a rule string from its parts.

    >>> build_recurrence_rule("WEEKLY", 1, ["Monday", "Wednesday"])
    'FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE'
    """
    freq = frequency.value if isinstance(frequency, Frequency) else str(frequency).strip().upper()
    rule = f"FREQ={freq};INTERVAL={interval or 1}"
    if repeat_day_names:
        codes = [day_name_to_code(name) for name in repeat_day_names]
        rule += f";BYDAY={','.join(codes)}"
    return rule


def parse_recurrence_rule(rule: str) -> RecurrenceRule:
    """Parse a rule string into a RecurrenceRule.

    Raises RecurrenceRuleError when FREQ is missing or unsupported, or the
    string is not RRULE syntax at all. Unsupported parts (COUNT, UNTIL, ...)
    are dropped.
    """
    text = (rule or "").strip()
    if text.upper().startswith("RRULE:"):
        text = text[len("RRULE:"):]
    if not text:
        raise RecurrenceRuleError("Empty recurrence rule")

    try:
        parsed = vRecur.from_ical(text.upper())
    except ValueError as exc:
        raise RecurrenceRuleError(f"Invalid recurrence rule '{rule}': {exc}") from exc

    freq_values = parsed.get("FREQ") or []
    if not freq_values:
        raise RecurrenceRuleError(f"Recurrence rule '{rule}' has no FREQ")
    try:
        frequency = Frequency(str(freq_values[0]).upper())
    except ValueError as exc:
        raise RecurrenceRuleError(f"Unsupported frequency in '{rule}'") from exc

    interval_values = parsed.get("INTERVAL") or [1]
    try:
        interval = max(1, int(interval_values[0]))
    except (TypeError, ValueError):
        interval = 1

    by_day: list[str] = []
    for value in parsed.get("BYDAY") or []:
        code = str(value).upper()[-2:]
        if code in DAY_CODE_TO_NAME and code not in by_day:
            by_day.append(code)

    ignored = [key for key in parsed if key not in ("FREQ", "INTERVAL", "BYDAY")]
    if ignored:
        logger.info("Ignoring unsupported recurrence parts %s in '%s'", ignored, rule)

    return RecurrenceRule(frequency=frequency, interval=interval, by_day=tuple(by_day))


def normalize_recurrence_rule(rule: str | None) -> tuple[str | None, str | None]:
    """Canonicalize a rule string for storage.

    Returns (canonical_rule, warning). An invalid rule yields (None, warning):
    the item is stored as a one-off rather than rejected.
    """
    if not rule:
        return None, None
    try:
        return parse_recurrence_rule(rule).to_rrule(), None
    except RecurrenceRuleError as exc:
        logger.warning("Dropping recurrence rule: %s", exc)
        return None, f"Recurrence rule '{rule}' is not supported; the item was saved as a one-time event."


def occurs_on(item: ScheduleItem, target: date) -> bool:
    """Decide whether a schedule item materializes on a calendar date.

    - all-day items match by calendar date only
    - DAILY rules always match
    - WEEKLY with BYDAY matches listed weekdays, otherwise the item's own weekday
    - MONTHLY matches the item's day of month
    - YEARLY matches the item's month and day
    - items without a usable rule match their own calendar date
    """
    item_date = item.local_date
    if item_date is None:
        return False

    if item.all_day:
        return item_date == target

    rule = item.recurrence
    if rule is None:
        return item_date == target

    if rule.frequency is Frequency.DAILY:
        return True
    if rule.frequency is Frequency.WEEKLY:
        if rule.by_day:
            return _WEEKDAY_CODES[target.weekday()] in rule.by_day
        return item_date.weekday() == target.weekday()
    if rule.frequency is Frequency.MONTHLY:
        return item_date.day == target.day
    if rule.frequency is Frequency.YEARLY:
        return (item_date.month, item_date.day) == (target.month, target.day)
    return item_date == target
