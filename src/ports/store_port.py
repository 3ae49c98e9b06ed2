"""Store port: abstract interface for the owner-scoped row store.

Core modules depend on this protocol, never on a specific database.
Every operation is filtered by owner: a row belonging to another user is
indistinguishable from a missing one.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

Row = dict[str, Any]


class StoreError(Exception):
    """Raised when the underlying store is unreachable or rejects a write."""


class ResourceKind(Enum):
    """The four user-owned resource kinds; values are table names."""

    SCHEDULE = "schedule_items"
    IDEA = "ideas"
    GOAL = "goals"
    RESOURCE = "resources"


class RowStore(Protocol):
    """Abstract CRUD interface used by core modules."""

    async def list_rows(
        self, kind: ResourceKind, owner_id: str, order_by: str, ascending: bool = True,
    ) -> list[Row]: ...

    async def get_row(self, kind: ResourceKind, row_id: str, owner_id: str) -> Row | None: ...

    async def create_row(self, kind: ResourceKind, owner_id: str, fields: Row) -> Row: ...

    async def update_row(
        self, kind: ResourceKind, row_id: str, owner_id: str, fields: Row,
    ) -> Row | None: ...

    async def delete_row(self, kind: ResourceKind, row_id: str, owner_id: str) -> bool: ...

    async def get_bio(self, owner_id: str) -> str: ...

    async def update_bio(self, owner_id: str, bio: str) -> str: ...
