"""
Planner Agent — SQLite Row Store.

Owner-scoped CRUD over schedule items, ideas, goals and resources, plus the
single free-text bio per user. Implements RowStore; every statement filters
by user_id so a caller can never read or mutate another user's rows.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from src.data.models import DEFAULT_GOAL_CATEGORY, LegacyHabit
from src.ports.store_port import ResourceKind, Row, StoreError

logger = logging.getLogger(__name__)

# Writable columns per table (id, user_id and timestamps are managed here)
_COLUMNS: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.SCHEDULE: (
        "title", "description", "priority", "start_time", "end_time",
        "all_day", "recurrence_rule", "timezone",
    ),
    ResourceKind.IDEA: ("title", "content"),
    ResourceKind.GOAL: ("title", "description", "target_date", "progress", "category"),
    ResourceKind.RESOURCE: ("title", "url", "description", "category", "relevance_score"),
}

_MANAGED_COLUMNS = ("id", "user_id", "created_at", "updated_at")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def habit_to_goal_fields(habit: LegacyHabit, today: date, horizon_days: int) -> Row:
    """Convert a legacy habit into goal columns.

    Habit-only attributes (frequency, type, target days, streak) have no goal
    counterpart, so they are kept as text in the description.
    """
    notes: list[str] = []
    if habit.frequency:
        notes.append(f"Habit frequency: {habit.frequency}")
    if habit.target_days:
        notes.append(f"Days: {', '.join(habit.target_days)}")
    if habit.streak:
        notes.append(f"Streak when migrated: {habit.streak}")

    description = habit.description or ""
    if notes:
        description = (description + "\n" if description else "") + "; ".join(notes)

    category = habit.type.strip().capitalize() if habit.type and habit.type.strip() else DEFAULT_GOAL_CATEGORY

    return {
        "title": habit.title,
        "description": description or None,
        "target_date": (today + timedelta(days=horizon_days)).isoformat(),
        "progress": 0,
        "category": category,
    }


class SQLiteRowStore:
    """SQLite-backed storage for all user-owned rows."""

    def __init__(
        self, db_path: str | None = None, habit_horizon_days: int | None = None,
    ) -> None:
        if db_path is None or habit_horizon_days is None:
            from src.config import settings
            db_path = db_path or settings.DATABASE_PATH
            if habit_horizon_days is None:
                habit_horizon_days = settings.HABIT_MIGRATION_HORIZON_DAYS

        self._db_path = db_path
        self._habit_horizon_days = habit_horizon_days
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create tables if they don't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schedule_items (
                    id              TEXT PRIMARY KEY,
                    user_id         TEXT NOT NULL,
                    title           TEXT NOT NULL,
                    description     TEXT,
                    priority        TEXT CHECK (priority IN ('low', 'medium', 'high')),
                    start_time      TEXT NOT NULL,
                    end_time        TEXT NOT NULL,
                    all_day         INTEGER NOT NULL DEFAULT 0,
                    recurrence_rule TEXT,
                    created_at      TEXT NOT NULL,
                    updated_at      TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ideas (
                    id         TEXT PRIMARY KEY,
                    user_id    TEXT NOT NULL,
                    title      TEXT,
                    content    TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS goals (
                    id          TEXT PRIMARY KEY,
                    user_id     TEXT NOT NULL,
                    title       TEXT NOT NULL,
                    description TEXT,
                    target_date TEXT NOT NULL,
                    progress    INTEGER NOT NULL DEFAULT 0
                                CHECK (progress >= 0 AND progress <= 100),
                    category    TEXT NOT NULL DEFAULT 'Personal',
                    created_at  TEXT NOT NULL,
                    updated_at  TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS resources (
                    id              TEXT PRIMARY KEY,
                    user_id         TEXT NOT NULL,
                    title           TEXT NOT NULL,
                    url             TEXT NOT NULL,
                    description     TEXT NOT NULL DEFAULT '',
                    category        TEXT NOT NULL DEFAULT 'Article'
                                    CHECK (category IN ('Article', 'Video', 'Course', 'Tool')),
                    relevance_score INTEGER NOT NULL DEFAULT 50
                                    CHECK (relevance_score >= 0 AND relevance_score <= 100),
                    created_at      TEXT NOT NULL,
                    updated_at      TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    id         TEXT PRIMARY KEY,
                    bio        TEXT NOT NULL DEFAULT '',
                    updated_at TEXT NOT NULL
                )
            """)
            for table in ("schedule_items", "ideas", "goals", "resources"):
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS {table}_user_id_idx ON {table} (user_id)"
                )

            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(schedule_items)").fetchall()
            }
            if "timezone" not in existing_cols:
                conn.execute("ALTER TABLE schedule_items ADD COLUMN timezone TEXT")

            self._migrate_habits(conn)
        logger.debug("Row store initialized at %s", self._db_path)

    def _migrate_habits(self, conn: sqlite3.Connection) -> None:
        """Move rows from the legacy habits table into goals, then drop it."""
        has_habits = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'habits'"
        ).fetchone()
        if not has_habits:
            return

        rows = conn.execute("SELECT * FROM habits").fetchall()
        today = date.today()
        for row in rows:
            habit = self._row_to_habit(row)
            goal = habit_to_goal_fields(habit, today, self._habit_horizon_days)
            now = _now()
            conn.execute(
                """
                INSERT INTO goals
                    (id, user_id, title, description, target_date, progress, category,
                     created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(uuid.uuid4()), habit.user_id, goal["title"], goal["description"],
                    goal["target_date"], goal["progress"], goal["category"],
                    habit.created_at or now, now,
                ),
            )
        conn.execute("DROP TABLE habits")
        logger.info("Migrated %d legacy habits into goals", len(rows))

    @staticmethod
    def _row_to_habit(row: sqlite3.Row) -> LegacyHabit:
        keys = row.keys()
        target_days = row["target_days"] if "target_days" in keys else None
        if isinstance(target_days, str):
            try:
                target_days = json.loads(target_days)
            except json.JSONDecodeError:
                target_days = [d.strip() for d in target_days.split(",") if d.strip()]
        return LegacyHabit(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            title=row["title"],
            description=row["description"] if "description" in keys else None,
            frequency=row["frequency"] if "frequency" in keys else None,
            type=row["type"] if "type" in keys else None,
            target_days=list(target_days or []),
            streak=(row["streak"] if "streak" in keys else 0) or 0,
            created_at=(row["created_at"] if "created_at" in keys else "") or "",
        )

    @staticmethod
    def _row_to_dict(kind: ResourceKind, row: sqlite3.Row) -> Row:
        data = dict(row)
        if kind is ResourceKind.SCHEDULE:
            data["all_day"] = bool(data.get("all_day"))
        return data

    @staticmethod
    def _writable(kind: ResourceKind, fields: Row) -> Row:
        allowed = _COLUMNS[kind]
        dropped = [k for k in fields if k not in allowed and k not in _MANAGED_COLUMNS]
        if dropped:
            logger.debug("Ignoring unknown %s columns: %s", kind.value, dropped)
        data = {k: v for k, v in fields.items() if k in allowed}
        if "all_day" in data and data["all_day"] is not None:
            data["all_day"] = int(bool(data["all_day"]))
        return data

    def _fetch(self, conn: sqlite3.Connection, kind: ResourceKind, row_id: str, owner_id: str) -> Row | None:
        row = conn.execute(
            f"SELECT * FROM {kind.value} WHERE id = ? AND user_id = ?",
            (row_id, owner_id),
        ).fetchone()
        return None if row is None else self._row_to_dict(kind, row)

    # ------------------------------------------------------------------
    # Blocking statements (run in a worker thread)
    # ------------------------------------------------------------------

    def _list_rows(self, kind: ResourceKind, owner_id: str, order_by: str, direction: str) -> list[Row]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    f"SELECT * FROM {kind.value} WHERE user_id = ? "
                    f"ORDER BY {order_by} {direction}, rowid {direction}",
                    (owner_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to list {kind.value}: {exc}") from exc
        return [self._row_to_dict(kind, r) for r in rows]

    def _get_row(self, kind: ResourceKind, row_id: str, owner_id: str) -> Row | None:
        try:
            with self._connect() as conn:
                return self._fetch(conn, kind, row_id, owner_id)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read {kind.value} {row_id}: {exc}") from exc

    def _create_row(self, kind: ResourceKind, owner_id: str, data: Row) -> Row:
        row_id = str(uuid.uuid4())
        now = _now()
        columns = ["id", "user_id", *data.keys(), "created_at", "updated_at"]
        values = [row_id, owner_id, *data.values(), now, now]
        placeholders = ", ".join("?" for _ in columns)
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO {kind.value} ({', '.join(columns)}) VALUES ({placeholders})",
                    values,
                )
                created = self._fetch(conn, kind, row_id, owner_id)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to create {kind.value} row: {exc}") from exc
        logger.info("Created %s %s for user %s", kind.value, row_id, owner_id)
        return created

    def _update_row(self, kind: ResourceKind, row_id: str, owner_id: str, data: Row) -> Row | None:
        try:
            with self._connect() as conn:
                if not data:
                    return self._fetch(conn, kind, row_id, owner_id)
                assignments = ", ".join(f"{col} = ?" for col in data)
                cursor = conn.execute(
                    f"UPDATE {kind.value} SET {assignments}, updated_at = ? "
                    "WHERE id = ? AND user_id = ?",
                    (*data.values(), _now(), row_id, owner_id),
                )
                if cursor.rowcount == 0:
                    logger.info("Update of %s %s matched no row for user %s", kind.value, row_id, owner_id)
                    return None
                updated = self._fetch(conn, kind, row_id, owner_id)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to update {kind.value} {row_id}: {exc}") from exc
        logger.info("Updated %s %s (%s)", kind.value, row_id, ", ".join(data))
        return updated

    def _delete_row(self, kind: ResourceKind, row_id: str, owner_id: str) -> bool:
        try:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"DELETE FROM {kind.value} WHERE id = ? AND user_id = ?",
                    (row_id, owner_id),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to delete {kind.value} {row_id}: {exc}") from exc
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted %s %s", kind.value, row_id)
        return deleted

    def _get_bio(self, owner_id: str) -> str:
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT bio FROM profiles WHERE id = ?", (owner_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to read bio: {exc}") from exc
        return row["bio"] if row is not None else ""

    def _update_bio(self, owner_id: str, bio: str) -> str:
        try:
            with self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO profiles (id, bio, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET bio = excluded.bio, updated_at = excluded.updated_at
                    """,
                    (owner_id, bio, _now()),
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to update bio: {exc}") from exc
        logger.info("Bio updated for user %s (%d chars)", owner_id, len(bio))
        return bio

    # ------------------------------------------------------------------
    # RowStore
    # ------------------------------------------------------------------

    async def list_rows(
        self, kind: ResourceKind, owner_id: str, order_by: str, ascending: bool = True,
    ) -> list[Row]:
        """Return all rows of a kind owned by owner_id, ordered by a column."""
        if order_by not in _COLUMNS[kind] + _MANAGED_COLUMNS:
            raise ValueError(f"Cannot order {kind.value} by {order_by!r}")
        direction = "ASC" if ascending else "DESC"
        return await asyncio.to_thread(self._list_rows, kind, owner_id, order_by, direction)

    async def get_row(self, kind: ResourceKind, row_id: str, owner_id: str) -> Row | None:
        """Fetch a single owned row, or None."""
        return await asyncio.to_thread(self._get_row, kind, row_id, owner_id)

    async def create_row(self, kind: ResourceKind, owner_id: str, fields: Row) -> Row:
        """Insert a row for owner_id and return it as persisted."""
        return await asyncio.to_thread(self._create_row, kind, owner_id, self._writable(kind, fields))

    async def update_row(
        self, kind: ResourceKind, row_id: str, owner_id: str, fields: Row,
    ) -> Row | None:
        """Apply a partial patch. Returns None when the row is missing or not owned."""
        return await asyncio.to_thread(self._update_row, kind, row_id, owner_id, self._writable(kind, fields))

    async def delete_row(self, kind: ResourceKind, row_id: str, owner_id: str) -> bool:
        """Permanently delete an owned row. False when nothing matched."""
        return await asyncio.to_thread(self._delete_row, kind, row_id, owner_id)

    async def get_bio(self, owner_id: str) -> str:
        """Return the user's bio, or "" when none was written yet."""
        return await asyncio.to_thread(self._get_bio, owner_id)

    async def update_bio(self, owner_id: str, bio: str) -> str:
        """Replace the user's bio entirely and return the stored value."""
        return await asyncio.to_thread(self._update_bio, owner_id, bio)
