"""
Planner Agent — Resource Store Adapter.

Sits between the tool dispatcher and the row store. Turns validated tool
arguments into row fields: schedule times go through the time normalizer,
recurrence rules are canonicalized, goal progress and resource scores are
clamped. Problems with the input never fail the write; they come back as
warnings next to the stored row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from src.core.recurrence import build_recurrence_rule, normalize_recurrence_rule, occurs_on
from src.core.time_parser import (
    DEFAULT_DURATION,
    add_elapsed,
    elapsed_between,
    format_clock,
    normalize_time_range,
    parse_date,
    resolve_wall_clock,
    to_local,
)
from src.core.tools import (
    CreateGoalArgs,
    CreateIdeaArgs,
    CreateResourceArgs,
    CreateScheduleItemArgs,
    UpdateGoalArgs,
    UpdateIdeaArgs,
    UpdateResourceArgs,
    UpdateScheduleItemArgs,
)
from src.data.models import DEFAULT_GOAL_CATEGORY, ScheduleItem
from src.integrations.web_search import infer_category
from src.ports.store_port import ResourceKind, Row, RowStore

logger = logging.getLogger(__name__)

# kind -> (order_by, ascending) for list operations
_ORDERING: dict[ResourceKind, tuple[str, bool]] = {
    ResourceKind.SCHEDULE: ("start_time", True),
    ResourceKind.IDEA: ("created_at", False),
    ResourceKind.GOAL: ("created_at", False),
    ResourceKind.RESOURCE: ("relevance_score", False),
}

_DEFAULT_GOAL_HORIZON = timedelta(days=90)
_DEFAULT_RELEVANCE = 50


@dataclass
class WriteResult:
    """Outcome of a create/update. row is None when the target was missing or not owned."""

    row: Row | None
    warnings: list[str] = field(default_factory=list)


def _clamp_percent(value: int, label: str, warnings: list[str]) -> int:
    clamped = max(0, min(100, value))
    if clamped != value:
        warnings.append(f"{label} {value} is outside 0-100; stored {clamped}.")
    return clamped


def _resolve_recurrence(
    args: CreateScheduleItemArgs | UpdateScheduleItemArgs,
) -> tuple[str | None, bool, list[str]]:
    """Work out the recurrence rule to store.

    Returns (rule, provided, warnings); provided is False when the call said
    nothing about recurrence, so an update leaves the stored rule alone.
    recurrence_rule wins over the deprecated recurring/frequency/interval/
    repeat_days fields.
    """
    sent = args.model_fields_set
    if "recurrence_rule" in sent and args.recurrence_rule is not None:
        if not args.recurrence_rule.strip():
            return None, True, []
        rule, warning = normalize_recurrence_rule(args.recurrence_rule)
        return rule, True, [warning] if warning else []

    if args.recurring:
        built = build_recurrence_rule(args.frequency or "DAILY", args.interval or 1, args.repeat_days)
        rule, warning = normalize_recurrence_rule(built)
        logger.info("Converted deprecated recurrence fields to '%s'", rule)
        return rule, True, [warning] if warning else []

    if args.recurring is False:
        return None, True, []

    return None, False, []


class ResourceService:
    """Owner-scoped reads and writes for every resource kind."""

    def __init__(self, store: RowStore, timezone: str | None = None) -> None:
        if timezone is None:
            from src.config import settings
            timezone = settings.TIMEZONE

        self._store = store
        self._tz_name = timezone
        self._tz: tzinfo = ZoneInfo(timezone)

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def today(self) -> date:
        return datetime.now(self._tz).date()

    # ------------------------------------------------------------------
    # Generic operations
    # ------------------------------------------------------------------

    async def list_rows(self, kind: ResourceKind, owner_id: str) -> list[Row]:
        order_by, ascending = _ORDERING[kind]
        return await self._store.list_rows(kind, owner_id, order_by, ascending)

    async def delete(self, kind: ResourceKind, owner_id: str, row_id: str) -> bool:
        deleted = await self._store.delete_row(kind, row_id, owner_id)
        if not deleted:
            logger.info("Delete of %s %s: no such row for user %s", kind.value, row_id, owner_id)
        return deleted

    # ------------------------------------------------------------------
    # Schedule items
    # ------------------------------------------------------------------

    async def create_schedule_item(
        self, owner_id: str, args: CreateScheduleItemArgs, today: date,
    ) -> WriteResult:
        warnings: list[str] = []
        target_date = parse_date(args.date)
        if args.date and target_date is None:
            warnings.append(f"Could not read date '{args.date}'; used {today.isoformat()}.")

        span = normalize_time_range(target_date, args.start_time, args.end_time, tz=self._tz, today=today)
        warnings.extend(span.warnings)

        rule, _, rule_warnings = _resolve_recurrence(args)
        warnings.extend(rule_warnings)

        fields = {
            "title": args.title.strip(),
            "description": args.description,
            "priority": args.priority,
            "all_day": bool(args.all_day),
            "start_time": span.start.isoformat(),
            "end_time": span.end.isoformat(),
            "recurrence_rule": rule,
            "timezone": self._tz_name,
        }
        row = await self._store.create_row(ResourceKind.SCHEDULE, owner_id, fields)
        return WriteResult(row=row, warnings=warnings)

    async def update_schedule_item(
        self, owner_id: str, args: UpdateScheduleItemArgs, today: date,
    ) -> WriteResult:
        """Apply a partial patch; only fields the model sent are changed.

        A time change without a date keeps the item on its current day. A
        date change without times moves the item, keeping its wall-clock
        times and duration.
        """
        current = await self._store.get_row(ResourceKind.SCHEDULE, args.id, owner_id)
        if current is None:
            return WriteResult(row=None)

        item = ScheduleItem.from_row(current)
        sent = args.model_fields_set
        warnings: list[str] = []
        patch: Row = {}

        if args.title:
            patch["title"] = args.title.strip()
        if "description" in sent:
            patch["description"] = args.description
        if "priority" in sent:
            patch["priority"] = args.priority
        if args.all_day is not None:
            patch["all_day"] = args.all_day

        if args.start_time or args.end_time or args.date:
            warnings.extend(self._reschedule(item, args, today, patch))

        rule, provided, rule_warnings = _resolve_recurrence(args)
        if provided:
            patch["recurrence_rule"] = rule
        warnings.extend(rule_warnings)

        row = await self._store.update_row(ResourceKind.SCHEDULE, args.id, owner_id, patch)
        return WriteResult(row=row, warnings=warnings)

    def _reschedule(
        self, item: ScheduleItem, args: UpdateScheduleItemArgs, today: date, patch: Row,
    ) -> list[str]:
        zone = item.zone or self._tz
        old_start = to_local(item.start, zone) if item.start else None
        old_end = to_local(item.end, zone) if item.end else None
        duration = elapsed_between(old_start, old_end) if old_start and old_end else None
        if duration is not None and duration <= timedelta(0):
            duration = None

        warnings: list[str] = []
        new_date = parse_date(args.date)
        if args.date and new_date is None:
            warnings.append(f"Could not read date '{args.date}'; kept the current date.")
        day = new_date or (old_start.date() if old_start else today)

        if not args.start_time and not args.end_time:
            if old_start is None:
                return warnings
            # Date-only move: same wall-clock time, same duration
            start = resolve_wall_clock(old_start.replace(year=day.year, month=day.month, day=day.day))
            end = add_elapsed(start, duration or DEFAULT_DURATION)
        else:
            start_str = args.start_time or (old_start.strftime("%H:%M") if old_start else None)
            span = normalize_time_range(day, start_str, args.end_time, tz=zone, today=today)
            warnings.extend(span.warnings)
            start, end = span.start, span.end
            if args.start_time and not args.end_time and duration is not None:
                end = add_elapsed(start, duration)

        patch["start_time"] = start.isoformat()
        patch["end_time"] = end.isoformat()
        patch["timezone"] = getattr(zone, "key", self._tz_name)
        return warnings

    def format_schedule_item(self, row: Row, today: date) -> dict:
        """Present a stored row the way the model and the calendar read it."""
        item = ScheduleItem.from_row(row)
        zone = item.zone or self._tz
        start = to_local(item.start, zone) if item.start else None
        end = to_local(item.end, zone) if item.end else None
        rule = item.recurrence

        return {
            "id": item.id,
            "title": item.title,
            "description": item.description,
            "priority": item.priority,
            "all_day": item.all_day,
            "date": start.date().isoformat() if start else None,
            "start_time": format_clock(start) if start else None,
            "end_time": format_clock(end) if end else None,
            "recurring": rule is not None,
            "recurrence_rule": rule.to_rrule() if rule else None,
            "repeat_days": rule.day_names if rule else [],
            "occurs_today": occurs_on(item, today),
        }

    async def schedule_for_date(self, owner_id: str, target: date) -> list[Row]:
        """Items (one-off or recurring) that occur on target."""
        rows = await self.list_rows(ResourceKind.SCHEDULE, owner_id)
        return [row for row in rows if occurs_on(ScheduleItem.from_row(row), target)]

    # ------------------------------------------------------------------
    # Ideas
    # ------------------------------------------------------------------

    async def create_idea(self, owner_id: str, args: CreateIdeaArgs) -> WriteResult:
        row = await self._store.create_row(
            ResourceKind.IDEA, owner_id, {"content": args.content, "title": args.title},
        )
        return WriteResult(row=row)

    async def update_idea(self, owner_id: str, args: UpdateIdeaArgs) -> WriteResult:
        patch: Row = {}
        if args.content:
            patch["content"] = args.content
        if "title" in args.model_fields_set:
            patch["title"] = args.title
        row = await self._store.update_row(ResourceKind.IDEA, args.id, owner_id, patch)
        return WriteResult(row=row)

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    def _goal_date(self, value: str, today: date, warnings: list[str]) -> str:
        parsed = parse_date(value)
        if parsed is None:
            fallback = today + _DEFAULT_GOAL_HORIZON
            warnings.append(f"Could not read target date '{value}'; set it to {fallback.isoformat()}.")
            return fallback.isoformat()
        return parsed.isoformat()

    async def create_goal(self, owner_id: str, args: CreateGoalArgs, today: date) -> WriteResult:
        warnings: list[str] = []
        fields = {
            "title": args.title.strip(),
            "description": args.description,
            "target_date": self._goal_date(args.target_date, today, warnings),
            "progress": _clamp_percent(args.progress, "Progress", warnings) if args.progress is not None else 0,
            "category": (args.category or "").strip() or DEFAULT_GOAL_CATEGORY,
        }
        row = await self._store.create_row(ResourceKind.GOAL, owner_id, fields)
        return WriteResult(row=row, warnings=warnings)

    async def update_goal(self, owner_id: str, args: UpdateGoalArgs, today: date) -> WriteResult:
        warnings: list[str] = []
        patch: Row = {}
        if args.title:
            patch["title"] = args.title.strip()
        if "description" in args.model_fields_set:
            patch["description"] = args.description
        if args.target_date:
            patch["target_date"] = self._goal_date(args.target_date, today, warnings)
        if args.progress is not None:
            patch["progress"] = _clamp_percent(args.progress, "Progress", warnings)
        if args.category and args.category.strip():
            patch["category"] = args.category.strip()
        row = await self._store.update_row(ResourceKind.GOAL, args.id, owner_id, patch)
        return WriteResult(row=row, warnings=warnings)

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    async def create_resource(self, owner_id: str, args: CreateResourceArgs) -> WriteResult:
        warnings: list[str] = []
        score = args.relevance_score if args.relevance_score is not None else _DEFAULT_RELEVANCE
        fields = {
            "title": args.title.strip(),
            "url": args.url.strip(),
            "description": args.description or "",
            "category": args.category or infer_category(args.url),
            "relevance_score": _clamp_percent(score, "Relevance score", warnings),
        }
        row = await self._store.create_row(ResourceKind.RESOURCE, owner_id, fields)
        return WriteResult(row=row, warnings=warnings)

    async def update_resource(self, owner_id: str, args: UpdateResourceArgs) -> WriteResult:
        warnings: list[str] = []
        patch: Row = {}
        if args.title:
            patch["title"] = args.title.strip()
        if args.url:
            patch["url"] = args.url.strip()
        if args.description is not None:
            patch["description"] = args.description
        if args.category:
            patch["category"] = args.category
        if args.relevance_score is not None:
            patch["relevance_score"] = _clamp_percent(args.relevance_score, "Relevance score", warnings)
        row = await self._store.update_row(ResourceKind.RESOURCE, args.id, owner_id, patch)
        return WriteResult(row=row, warnings=warnings)

    # ------------------------------------------------------------------
    # Bio
    # ------------------------------------------------------------------

    async def get_bio(self, owner_id: str) -> str:
        return await self._store.get_bio(owner_id)

    async def update_bio(self, owner_id: str, bio: str) -> str:
        return await self._store.update_bio(owner_id, bio.strip())
