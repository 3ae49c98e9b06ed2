"""
Planner Agent — Data Models.

Typed views over the rows the store returns. Every row belongs to exactly
one user (user_id); the store never returns rows across owners.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from typing import Literal, get_args
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.core.recurrence import RecurrenceRule, RecurrenceRuleError, parse_recurrence_rule
from src.core.time_parser import parse_timestamp

Priority = Literal["low", "medium", "high"]
ResourceCategory = Literal["Article", "Video", "Course", "Tool"]

PRIORITIES: tuple[str, ...] = get_args(Priority)
RESOURCE_CATEGORIES: tuple[str, ...] = get_args(ResourceCategory)
DEFAULT_GOAL_CATEGORY = "Personal"


def _known_fields(cls: type, row: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in row.items() if k in names}


@dataclass
class ScheduleItem:
    """A calendar entry. Recurring items store a rule; occurrences are computed."""

    id: str
    user_id: str
    title: str
    start_time: str                       # ISO timestamp
    end_time: str                         # ISO timestamp, after start_time
    description: str | None = None
    priority: Priority | None = None
    all_day: bool = False
    recurrence_rule: str | None = None    # e.g. "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE"
    timezone: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: dict) -> ScheduleItem:
        data = _known_fields(cls, row)
        data["all_day"] = bool(data.get("all_day"))
        return cls(**data)

    @property
    def start(self) -> datetime | None:
        return parse_timestamp(self.start_time)

    @property
    def end(self) -> datetime | None:
        return parse_timestamp(self.end_time)

    @property
    def zone(self) -> ZoneInfo | None:
        if not self.timezone:
            return None
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return None

    @property
    def local_date(self) -> date | None:
        """Calendar date of the start, in the zone the item was created in."""
        start = self.start
        if start is None:
            return None
        zone = self.zone
        if zone is not None and start.tzinfo is not None:
            start = start.astimezone(zone)
        return start.date()

    @property
    def recurrence(self) -> RecurrenceRule | None:
        if not self.recurrence_rule:
            return None
        try:
            return parse_recurrence_rule(self.recurrence_rule)
        except RecurrenceRuleError:
            return None


@dataclass
class LegacyHabit:
    """Habit row from the earlier schema. Read only during migration to goals."""

    id: str
    user_id: str
    title: str
    description: str | None = None
    frequency: str | None = None
    type: str | None = None
    target_days: list[str] = field(default_factory=list)
    streak: int = 0
    created_at: str = ""
