"""
Planner Agent — Response Aggregator.

Collects the side effects of one loop run (rows created or updated, ids
deleted, the new bio, data fetched by getters) and freezes them into the
AgentResponse returned to the caller. One aggregator per request; nothing
here is shared between requests.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.core.dispatcher import ToolOutcome
from src.ports.store_port import ResourceKind, Row

logger = logging.getLogger(__name__)

# Optional response fields dropped from the payload when unset
_OPTIONAL_FIELDS = ("thoughts", "scheduleItems", "ideas", "goals", "resources")

_NOUNS: dict[ResourceKind, tuple[str, str]] = {
    ResourceKind.SCHEDULE: ("schedule item", "schedule items"),
    ResourceKind.IDEA: ("idea", "ideas"),
    ResourceKind.GOAL: ("goal", "goals"),
    ResourceKind.RESOURCE: ("resource", "resources"),
}


class AgentResponse(BaseModel):
    """Final result of one loop run. Serialized with camelCase keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    message: str
    schedule_updates: list[Row] = []
    ideas_updates: list[Row] = []
    goals_updates: list[Row] = []
    resources_updates: list[Row] = []
    schedule_deletions: list[str] = []
    ideas_deletions: list[str] = []
    goals_deletions: list[str] = []
    resources_deletions: list[str] = []
    bio_update: str | None = None
    thoughts: str | None = None
    session_id: str = ""
    # Data fetched by getters during the run
    schedule_items: list[Row] | None = None
    ideas: list[Row] | None = None
    goals: list[Row] | None = None
    resources: list[Row] | None = None

    def to_payload(self) -> dict:
        payload = self.model_dump(by_alias=True)
        for key in _OPTIONAL_FIELDS:
            if payload.get(key) is None:
                payload.pop(key, None)
        return payload


class ResponseAggregator:
    """Append-only buckets of everything a loop run changed."""

    def __init__(self) -> None:
        self._updates: dict[ResourceKind, list[Row]] = {kind: [] for kind in ResourceKind}
        self._deletions: dict[ResourceKind, list[str]] = {kind: [] for kind in ResourceKind}
        self._snapshots: dict[ResourceKind, list[Row]] = {}
        self._bio: str | None = None

    def absorb(self, outcome: ToolOutcome) -> None:
        """Record a tool outcome. Failed outcomes change nothing."""
        if not outcome.success:
            return
        if outcome.kind is not None:
            if outcome.changed_row is not None:
                self._updates[outcome.kind].append(outcome.changed_row)
            if outcome.deleted_id is not None:
                self._deletions[outcome.kind].append(outcome.deleted_id)
            if outcome.snapshot is not None:
                self._snapshots[outcome.kind] = list(outcome.snapshot)
        if outcome.bio is not None:
            self._bio = outcome.bio

    @property
    def changed_count(self) -> int:
        return sum(len(rows) for rows in self._updates.values()) + sum(
            len(ids) for ids in self._deletions.values()
        )

    def describe_changes(self) -> str:
        """Plain-language tally of the changes, e.g. "saved 1 schedule item"."""
        parts: list[str] = []
        for kind in ResourceKind:
            singular, plural = _NOUNS[kind]
            for verb, count in (("saved", len(self._updates[kind])), ("deleted", len(self._deletions[kind]))):
                if count:
                    parts.append(f"{verb} {count} {singular if count == 1 else plural}")
        if self._bio is not None:
            parts.append("updated your profile")
        return ", ".join(parts)

    def snapshot(self, message: str, thoughts: str | None, session_id: str) -> AgentResponse:
        """Freeze the buckets into the response (copies; later absorbs do not leak in)."""
        return AgentResponse(
            message=message,
            schedule_updates=list(self._updates[ResourceKind.SCHEDULE]),
            ideas_updates=list(self._updates[ResourceKind.IDEA]),
            goals_updates=list(self._updates[ResourceKind.GOAL]),
            resources_updates=list(self._updates[ResourceKind.RESOURCE]),
            schedule_deletions=list(self._deletions[ResourceKind.SCHEDULE]),
            ideas_deletions=list(self._deletions[ResourceKind.IDEA]),
            goals_deletions=list(self._deletions[ResourceKind.GOAL]),
            resources_deletions=list(self._deletions[ResourceKind.RESOURCE]),
            bio_update=self._bio,
            thoughts=thoughts,
            session_id=session_id,
            schedule_items=self._snapshot_of(ResourceKind.SCHEDULE),
            ideas=self._snapshot_of(ResourceKind.IDEA),
            goals=self._snapshot_of(ResourceKind.GOAL),
            resources=self._snapshot_of(ResourceKind.RESOURCE),
        )

    def _snapshot_of(self, kind: ResourceKind) -> list[Row] | None:
        rows = self._snapshots.get(kind)
        return list(rows) if rows is not None else None
