"""
Planner Agent — Tool Dispatcher.

Routes a resolved tool call to its handler through a name -> handler table
and packages the result twice: as the observation the model reads next, and
as a ToolOutcome the response aggregator folds into the final payload.

Failures never raise out of execute(): unknown tools, bad arguments, store
errors and missing rows all come back as success=False observations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable

from src.core.resource_service import ResourceService, WriteResult
from src.core.tools import ToolArgs, ToolCallError, parse_tool_call
from src.integrations.web_search import search_resources
from src.ports.store_port import ResourceKind, Row, StoreError

logger = logging.getLogger(__name__)

# kind -> (collection key, single-row key) in observations
_OBSERVATION_KEYS: dict[ResourceKind, tuple[str, str]] = {
    ResourceKind.SCHEDULE: ("scheduleItems", "scheduleItem"),
    ResourceKind.IDEA: ("ideas", "idea"),
    ResourceKind.GOAL: ("goals", "goal"),
    ResourceKind.RESOURCE: ("resources", "resource"),
}

_LABELS: dict[ResourceKind, str] = {
    ResourceKind.SCHEDULE: "schedule item",
    ResourceKind.IDEA: "idea",
    ResourceKind.GOAL: "goal",
    ResourceKind.RESOURCE: "resource",
}


@dataclass
class ToolOutcome:
    """Result of one dispatched tool call."""

    tool_name: str
    success: bool
    observation: dict
    kind: ResourceKind | None = None
    changed_row: Row | None = None        # created or updated row
    deleted_id: str | None = None
    bio: str | None = None                # new bio after update_user_bio
    snapshot: list[Row] | None = None     # rows fetched by a getter
    warnings: list[str] = field(default_factory=list)


_Handler = Callable[[ToolArgs, str, date], Awaitable[ToolOutcome]]


def _failure(tool_name: str, message: str, kind: ResourceKind | None = None) -> ToolOutcome:
    return ToolOutcome(
        tool_name=tool_name, success=False, observation={"success": False, "error": message}, kind=kind,
    )


class ToolDispatcher:
    """Executes catalog tools on behalf of one user."""

    def __init__(
        self,
        service: ResourceService,
        search_api_key: str | None = None,
        search_engine_id: str | None = None,
    ) -> None:
        if search_api_key is None or search_engine_id is None:
            from src.config import settings
            search_api_key = settings.GOOGLE_SEARCH_API_KEY if search_api_key is None else search_api_key
            search_engine_id = settings.GOOGLE_SEARCH_ENGINE_ID if search_engine_id is None else search_engine_id

        self._service = service
        self._search_api_key = search_api_key
        self._search_engine_id = search_engine_id
        self._handlers: dict[str, _Handler] = {
            "get_schedule_items": self._getter(ResourceKind.SCHEDULE),
            "create_schedule_item": self._create_schedule_item,
            "update_schedule_item": self._update_schedule_item,
            "delete_schedule_item": self._deleter(ResourceKind.SCHEDULE),
            "get_ideas": self._getter(ResourceKind.IDEA),
            "create_idea": self._writer(ResourceKind.IDEA, "create_idea", service.create_idea),
            "update_idea": self._writer(ResourceKind.IDEA, "update_idea", service.update_idea),
            "delete_idea": self._deleter(ResourceKind.IDEA),
            "get_goals": self._getter(ResourceKind.GOAL),
            "create_goal": self._create_goal,
            "update_goal": self._update_goal,
            "delete_goal": self._deleter(ResourceKind.GOAL),
            "get_user_bio": self._get_user_bio,
            "update_user_bio": self._update_user_bio,
            "get_resources": self._getter(ResourceKind.RESOURCE),
            "create_resource": self._writer(ResourceKind.RESOURCE, "create_resource", service.create_resource),
            "update_resource": self._writer(ResourceKind.RESOURCE, "update_resource", service.update_resource),
            "delete_resource": self._deleter(ResourceKind.RESOURCE),
            "search_web_resources": self._search_web_resources,
        }

    async def execute(
        self, name: str, arguments: str | dict | None, owner_id: str, today: date,
    ) -> ToolOutcome:
        """Validate and run one tool call. Never raises for tool-level failures."""
        try:
            call = parse_tool_call(name, arguments)
        except ToolCallError as exc:
            logger.warning("Rejected tool call %s: %s", name, exc)
            return _failure(name, str(exc))

        handler = self._handlers.get(call.name)
        if handler is None:
            return _failure(name, f"Tool '{name}' is not available")

        logger.info("Dispatching %s for user %s", call.name, owner_id)
        try:
            outcome = await handler(call.args, owner_id, today)
        except StoreError as exc:
            logger.error("Store failure during %s: %s", call.name, exc)
            return _failure(call.name, f"Could not complete {call.name}: {exc}")

        if outcome.warnings:
            outcome.observation["warnings"] = outcome.warnings
        return outcome

    # ------------------------------------------------------------------
    # Generic handlers
    # ------------------------------------------------------------------

    def _getter(self, kind: ResourceKind) -> _Handler:
        collection_key, _ = _OBSERVATION_KEYS[kind]
        tool_name = f"get_{kind.value}"

        async def handle(args: ToolArgs, owner_id: str, today: date) -> ToolOutcome:
            rows = await self._service.list_rows(kind, owner_id)
            presented = rows
            if kind is ResourceKind.SCHEDULE:
                presented = [self._service.format_schedule_item(row, today) for row in rows]
            return ToolOutcome(
                tool_name=tool_name,
                success=True,
                observation={"success": True, collection_key: presented, "count": len(rows)},
                kind=kind,
                snapshot=rows,
            )

        return handle

    def _deleter(self, kind: ResourceKind) -> _Handler:
        label = _LABELS[kind]
        tool_name = f"delete_{label.replace(' ', '_')}"

        async def handle(args: ToolArgs, owner_id: str, today: date) -> ToolOutcome:
            if not await self._service.delete(kind, owner_id, args.id):
                return _failure(tool_name, f"No {label} with id '{args.id}' was found", kind)
            return ToolOutcome(
                tool_name=tool_name,
                success=True,
                observation={"success": True, "deletedId": args.id},
                kind=kind,
                deleted_id=args.id,
            )

        return handle

    def _writer(
        self,
        kind: ResourceKind,
        tool_name: str,
        write: Callable[[str, ToolArgs], Awaitable[WriteResult]],
    ) -> _Handler:
        async def handle(args: ToolArgs, owner_id: str, today: date) -> ToolOutcome:
            return self._written(kind, tool_name, args, await write(owner_id, args))

        return handle

    @staticmethod
    def _written(kind: ResourceKind, tool_name: str, args: ToolArgs, result: WriteResult) -> ToolOutcome:
        label = _LABELS[kind]
        if result.row is None:
            outcome = _failure(tool_name, f"No {label} with id '{getattr(args, 'id', '')}' was found", kind)
            outcome.warnings = result.warnings
            return outcome
        _, single_key = _OBSERVATION_KEYS[kind]
        return ToolOutcome(
            tool_name=tool_name,
            success=True,
            observation={"success": True, single_key: result.row},
            kind=kind,
            changed_row=result.row,
            warnings=result.warnings,
        )

    # ------------------------------------------------------------------
    # Handlers that need the request date
    # ------------------------------------------------------------------

    async def _create_schedule_item(self, args, owner_id: str, today: date) -> ToolOutcome:
        result = await self._service.create_schedule_item(owner_id, args, today)
        return self._written(ResourceKind.SCHEDULE, "create_schedule_item", args, result)

    async def _update_schedule_item(self, args, owner_id: str, today: date) -> ToolOutcome:
        result = await self._service.update_schedule_item(owner_id, args, today)
        return self._written(ResourceKind.SCHEDULE, "update_schedule_item", args, result)

    async def _create_goal(self, args, owner_id: str, today: date) -> ToolOutcome:
        result = await self._service.create_goal(owner_id, args, today)
        return self._written(ResourceKind.GOAL, "create_goal", args, result)

    async def _update_goal(self, args, owner_id: str, today: date) -> ToolOutcome:
        result = await self._service.update_goal(owner_id, args, today)
        return self._written(ResourceKind.GOAL, "update_goal", args, result)

    # ------------------------------------------------------------------
    # Bio and web search
    # ------------------------------------------------------------------

    async def _get_user_bio(self, args, owner_id: str, today: date) -> ToolOutcome:
        bio = await self._service.get_bio(owner_id)
        return ToolOutcome(
            tool_name="get_user_bio", success=True, observation={"success": True, "bio": bio},
        )

    async def _update_user_bio(self, args, owner_id: str, today: date) -> ToolOutcome:
        bio = await self._service.update_bio(owner_id, args.bio)
        return ToolOutcome(
            tool_name="update_user_bio", success=True, observation={"success": True, "bio": bio}, bio=bio,
        )

    async def _search_web_resources(self, args, owner_id: str, today: date) -> ToolOutcome:
        if not self._search_api_key or not self._search_engine_id:
            return _failure("search_web_resources", "Web search is not configured on this server")

        results = await search_resources(
            args.query, self._search_api_key, self._search_engine_id, args.max_results,
        )
        if results is None:
            return _failure("search_web_resources", "Web search is unavailable right now")
        found = [r.to_dict() for r in results]
        return ToolOutcome(
            tool_name="search_web_resources",
            success=True,
            observation={"success": True, "results": found, "count": len(found)},
        )
