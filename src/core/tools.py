"""
Planner Agent — Tool Catalog.

The fixed set of operations the language model may invoke, each with a
JSON-schema parameter contract (sent to the model) and a pydantic argument
model (used to validate what the model sends back).

A tool call that names an unknown tool, carries malformed JSON or misses a
required argument raises ToolCallError; the loop turns that into a failed
observation instead of crashing.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.data.models import PRIORITIES, RESOURCE_CATEGORIES, Priority, ResourceCategory

logger = logging.getLogger(__name__)


class ToolCallError(Exception):
    """Raised when a tool invocation cannot be resolved against the catalog."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(message)
        self.tool_name = tool_name


# ---------------------------------------------------------------------------
# Argument models, one per tool
# ---------------------------------------------------------------------------


class ToolArgs(BaseModel):
    # Models sometimes send extra keys; they are ignored, not rejected
    model_config = ConfigDict(extra="ignore")


class NoArgs(ToolArgs):
    pass


class IdArgs(ToolArgs):
    id: str = Field(min_length=1)


class _ScheduleFields(ToolArgs):
    description: str | None = None
    date: str | None = None            # YYYY-MM-DD
    end_time: str | None = None
    priority: Priority | None = None
    all_day: bool | None = None
    recurrence_rule: str | None = None
    # Deprecated recurrence fields, converted to recurrence_rule
    recurring: bool | None = None
    frequency: str | None = None
    interval: int | None = None
    repeat_days: list[str] | None = None


class CreateScheduleItemArgs(_ScheduleFields):
    title: str = Field(min_length=1)
    start_time: str


class UpdateScheduleItemArgs(_ScheduleFields):
    id: str = Field(min_length=1)
    title: str | None = None
    start_time: str | None = None


class CreateIdeaArgs(ToolArgs):
    content: str = Field(min_length=1)
    title: str | None = None


class UpdateIdeaArgs(ToolArgs):
    id: str = Field(min_length=1)
    content: str | None = None
    title: str | None = None


class CreateGoalArgs(ToolArgs):
    title: str = Field(min_length=1)
    target_date: str
    description: str | None = None
    progress: int | None = None
    category: str | None = None


class UpdateGoalArgs(ToolArgs):
    id: str = Field(min_length=1)
    title: str | None = None
    target_date: str | None = None
    description: str | None = None
    progress: int | None = None
    category: str | None = None


class UpdateBioArgs(ToolArgs):
    bio: str


class CreateResourceArgs(ToolArgs):
    title: str = Field(min_length=1)
    url: str = Field(min_length=1)
    description: str | None = None
    category: ResourceCategory | None = None
    relevance_score: int | None = None


class UpdateResourceArgs(ToolArgs):
    id: str = Field(min_length=1)
    title: str | None = None
    url: str | None = None
    description: str | None = None
    category: ResourceCategory | None = None
    relevance_score: int | None = None


class SearchWebResourcesArgs(ToolArgs):
    query: str = Field(min_length=1)
    max_results: int = Field(default=5, ge=1, le=10)


# ---------------------------------------------------------------------------
# Parameter schemas sent to the model
# ---------------------------------------------------------------------------


def _str(description: str, **extra: Any) -> dict:
    return {"type": "string", "description": description, **extra}


_PRIORITY = _str("Priority level", enum=list(PRIORITIES))
_RESOURCE_CATEGORY = _str("Resource type", enum=list(RESOURCE_CATEGORIES))

_SCHEDULE_PROPERTIES = {
    "title": _str("Title of the schedule item"),
    "description": _str("Optional description of the schedule item"),
    "date": _str("Date in format YYYY-MM-DD. Defaults to today on create"),
    "start_time": _str("Start time in format HH:MM or h:MM AM/PM"),
    "end_time": _str(
        "End time in format HH:MM or h:MM AM/PM. If not provided, defaults to 1 hour after start time"
    ),
    "priority": _PRIORITY,
    "all_day": {"type": "boolean", "description": "Whether this is an all-day event"},
    "recurrence_rule": _str('iCal RRULE string like "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE"'),
    "recurring": {
        "type": "boolean",
        "description": "DEPRECATED: Whether this is a recurring event. Use recurrence_rule instead.",
    },
    "frequency": _str(
        "DEPRECATED: Frequency for recurring events (daily/weekly/monthly/yearly). "
        "Use recurrence_rule instead."
    ),
    "interval": {
        "type": "integer",
        "description": "DEPRECATED: Interval for recurring events. Use recurrence_rule instead.",
    },
    "repeat_days": {
        "type": "array",
        "items": {"type": "string"},
        "description": "DEPRECATED: Days of the week for recurring events. Use recurrence_rule instead.",
    },
}

_GOAL_PROPERTIES = {
    "title": _str("Title of the goal"),
    "description": _str("What the goal is about and how success is measured"),
    "target_date": _str("Target completion date in format YYYY-MM-DD"),
    "progress": {"type": "integer", "description": "Progress percentage from 0 to 100"},
    "category": _str('Category such as "Personal", "Health", "Career"'),
}

_RESOURCE_PROPERTIES = {
    "title": _str("Title of the resource"),
    "url": _str("Link to the resource"),
    "description": _str("Short summary of why the resource is useful"),
    "category": _RESOURCE_CATEGORY,
    "relevance_score": {
        "type": "integer",
        "description": "How relevant the resource is to the user's goals, 0 to 100",
    },
}


def _object(properties: dict | None = None, required: list[str] | None = None) -> dict:
    return {"type": "object", "properties": properties or {}, "required": required or []}


def _with_id(properties: dict, what: str) -> dict:
    return {"id": _str(f"ID of the {what} to update"), **properties}


@dataclass(frozen=True)
class ToolSpec:
    """One catalog entry: what the model sees, and how its arguments are checked."""

    name: str
    description: str
    parameters: dict
    args_model: type[ToolArgs]

    def to_openai(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def to_anthropic(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }


_SPECS: list[ToolSpec] = [
    # Schedule
    ToolSpec("get_schedule_items", "Retrieve the user's schedule items", _object(), NoArgs),
    ToolSpec(
        "create_schedule_item",
        "Create a new schedule item or event for the user",
        _object(_SCHEDULE_PROPERTIES, ["title", "start_time"]),
        CreateScheduleItemArgs,
    ),
    ToolSpec(
        "update_schedule_item",
        "Update an existing schedule item. Only the fields provided are changed",
        _object(_with_id(_SCHEDULE_PROPERTIES, "schedule item"), ["id"]),
        UpdateScheduleItemArgs,
    ),
    ToolSpec(
        "delete_schedule_item",
        "Delete a schedule item",
        _object({"id": _str("ID of the schedule item to delete")}, ["id"]),
        IdArgs,
    ),
    # Ideas
    ToolSpec("get_ideas", "Retrieve the user's ideas", _object(), NoArgs),
    ToolSpec(
        "create_idea",
        "Create a new idea for the user",
        _object({"content": _str("The content of the idea"), "title": _str("Optional short title")}, ["content"]),
        CreateIdeaArgs,
    ),
    ToolSpec(
        "update_idea",
        "Update an existing idea",
        _object(
            {"id": _str("ID of the idea to update"), "content": _str("Updated content"), "title": _str("Updated title")},
            ["id"],
        ),
        UpdateIdeaArgs,
    ),
    ToolSpec("delete_idea", "Delete an idea", _object({"id": _str("ID of the idea to delete")}, ["id"]), IdArgs),
    # Goals
    ToolSpec("get_goals", "Retrieve the user's goals with their progress", _object(), NoArgs),
    ToolSpec(
        "create_goal",
        "Create a new goal for the user",
        _object(_GOAL_PROPERTIES, ["title", "target_date"]),
        CreateGoalArgs,
    ),
    ToolSpec(
        "update_goal",
        "Update an existing goal, for example its progress",
        _object(_with_id(_GOAL_PROPERTIES, "goal"), ["id"]),
        UpdateGoalArgs,
    ),
    ToolSpec("delete_goal", "Delete a goal", _object({"id": _str("ID of the goal to delete")}, ["id"]), IdArgs),
    # Bio
    ToolSpec("get_user_bio", "Retrieve the user's biography/profile information", _object(), NoArgs),
    ToolSpec(
        "update_user_bio",
        "Replace the user's biography with an updated version that includes new information",
        _object({"bio": _str("The complete updated biography text for the user")}, ["bio"]),
        UpdateBioArgs,
    ),
    # Resources
    ToolSpec("get_resources", "Retrieve the learning resources saved for the user's goals", _object(), NoArgs),
    ToolSpec(
        "create_resource",
        "Save a learning resource (article, video, course or tool) for the user",
        _object(_RESOURCE_PROPERTIES, ["title", "url"]),
        CreateResourceArgs,
    ),
    ToolSpec(
        "update_resource",
        "Update a saved resource",
        _object(_with_id(_RESOURCE_PROPERTIES, "resource"), ["id"]),
        UpdateResourceArgs,
    ),
    ToolSpec(
        "delete_resource",
        "Delete a saved resource",
        _object({"id": _str("ID of the resource to delete")}, ["id"]),
        IdArgs,
    ),
    ToolSpec(
        "search_web_resources",
        "Search the web for resources that help with a goal. Results are not saved; "
        "call create_resource for the ones worth keeping",
        _object(
            {
                "query": _str("Search query"),
                "max_results": {"type": "integer", "description": "Number of results, 1 to 10 (default 5)"},
            },
            ["query"],
        ),
        SearchWebResourcesArgs,
    ),
]

TOOL_CATALOG: dict[str, ToolSpec] = {spec.name: spec for spec in _SPECS}


# ---------------------------------------------------------------------------
# Resolving a model's tool call
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation resolved against the catalog, with validated arguments."""

    name: str
    args: ToolArgs


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "arguments"
        problems.append(f"{location}: {error['msg']}")
    return "; ".join(problems)


def parse_tool_call(name: str, arguments: str | dict | None) -> ToolCall:
    """Validate a raw tool invocation from the model.

    Getters take no arguments, so whatever the model sent for them is
    ignored. Raises ToolCallError for unknown names, malformed JSON and
    missing or invalid arguments.
    """
    spec = TOOL_CATALOG.get(name)
    if spec is None:
        logger.warning("Model requested unknown tool '%s'", name)
        raise ToolCallError(name, f"Unknown tool '{name}'. Available tools: {', '.join(TOOL_CATALOG)}")

    if spec.args_model is NoArgs:
        return ToolCall(name=name, args=NoArgs())

    if isinstance(arguments, dict):
        payload = arguments
    else:
        text = (arguments or "").strip() or "{}"
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("Malformed arguments for %s: %s", name, exc)
            raise ToolCallError(name, f"Arguments for '{name}' are not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ToolCallError(name, f"Arguments for '{name}' must be a JSON object")

    try:
        args = spec.args_model.model_validate(payload)
    except ValidationError as exc:
        message = _format_validation_error(exc)
        logger.warning("Invalid arguments for %s: %s", name, message)
        raise ToolCallError(name, f"Invalid arguments for '{name}': {message}") from exc

    return ToolCall(name=name, args=args)


def openai_tools() -> list[dict]:
    return [spec.to_openai() for spec in _SPECS]


def anthropic_tools() -> list[dict]:
    return [spec.to_anthropic() for spec in _SPECS]
