"""Tests for src.data.db: SQLiteRowStore (owner-scoped SQLite storage)."""

import asyncio
import json
import sqlite3
import time
from datetime import date, timedelta
from unittest.mock import patch

import pytest

from src.data.db import SQLiteRowStore, habit_to_goal_fields
from src.data.models import LegacyHabit
from src.ports.store_port import ResourceKind, StoreError


def _schedule_fields(title="Dentist", start="2025-05-15T15:00:00+00:00", end="2025-05-15T16:00:00+00:00"):
    return {"title": title, "start_time": start, "end_time": end, "all_day": False, "timezone": "UTC"}


class TestCreateAndList:
    @pytest.mark.asyncio
    async def test_create_returns_persisted_row(self, store):
        row = await store.create_row(ResourceKind.SCHEDULE, "u1", _schedule_fields())
        assert row["id"]
        assert row["user_id"] == "u1"
        assert row["title"] == "Dentist"
        assert row["all_day"] is False
        assert row["created_at"] == row["updated_at"]

    @pytest.mark.asyncio
    async def test_list_is_ordered_and_owner_scoped(self, store):
        await store.create_row(ResourceKind.SCHEDULE, "u1", _schedule_fields("Late", "2025-05-15T18:00:00+00:00"))
        await store.create_row(ResourceKind.SCHEDULE, "u1", _schedule_fields("Early", "2025-05-15T08:00:00+00:00"))
        await store.create_row(ResourceKind.SCHEDULE, "u2", _schedule_fields("Other user"))

        rows = await store.list_rows(ResourceKind.SCHEDULE, "u1", "start_time", ascending=True)
        assert [r["title"] for r in rows] == ["Early", "Late"]

        rows = await store.list_rows(ResourceKind.SCHEDULE, "u1", "start_time", ascending=False)
        assert [r["title"] for r in rows] == ["Late", "Early"]

    @pytest.mark.asyncio
    async def test_list_rejects_unknown_order_column(self, store):
        with pytest.raises(ValueError):
            await store.list_rows(ResourceKind.IDEA, "u1", "content; DROP TABLE ideas")

    @pytest.mark.asyncio
    async def test_unknown_fields_are_ignored(self, store):
        row = await store.create_row(ResourceKind.IDEA, "u1", {"content": "Podcast", "mood": "great"})
        assert "mood" not in row
        assert row["content"] == "Podcast"

    @pytest.mark.asyncio
    async def test_constraint_violation_raises_store_error(self, store):
        with pytest.raises(StoreError):
            await store.create_row(
                ResourceKind.GOAL, "u1", {"title": "Read", "target_date": "2025-12-31", "progress": 150},
            )

    @pytest.mark.asyncio
    async def test_missing_required_column_raises_store_error(self, store):
        with pytest.raises(StoreError):
            await store.create_row(ResourceKind.RESOURCE, "u1", {"title": "No url"})

    @pytest.mark.asyncio
    async def test_goal_defaults(self, store):
        row = await store.create_row(ResourceKind.GOAL, "u1", {"title": "Read", "target_date": "2025-12-31"})
        assert row["progress"] == 0
        assert row["category"] == "Personal"


class TestOwnership:
    @pytest.mark.asyncio
    async def test_get_row_of_other_owner_is_none(self, store):
        row = await store.create_row(ResourceKind.IDEA, "u1", {"content": "Secret plan"})
        assert await store.get_row(ResourceKind.IDEA, row["id"], "u2") is None
        assert (await store.get_row(ResourceKind.IDEA, row["id"], "u1"))["content"] == "Secret plan"

    @pytest.mark.asyncio
    async def test_update_applies_partial_patch(self, store):
        row = await store.create_row(ResourceKind.SCHEDULE, "u1", _schedule_fields())
        updated = await store.update_row(ResourceKind.SCHEDULE, row["id"], "u1", {"priority": "high"})
        assert updated["priority"] == "high"
        assert updated["title"] == "Dentist"
        assert updated["start_time"] == row["start_time"]

    @pytest.mark.asyncio
    async def test_update_of_other_owner_returns_none_and_changes_nothing(self, store):
        row = await store.create_row(ResourceKind.IDEA, "u1", {"content": "Original"})
        assert await store.update_row(ResourceKind.IDEA, row["id"], "u2", {"content": "Hijacked"}) is None
        assert (await store.get_row(ResourceKind.IDEA, row["id"], "u1"))["content"] == "Original"

    @pytest.mark.asyncio
    async def test_update_missing_row_returns_none(self, store):
        assert await store.update_row(ResourceKind.GOAL, "nope", "u1", {"progress": 10}) is None

    @pytest.mark.asyncio
    async def test_empty_patch_returns_current_row(self, store):
        row = await store.create_row(ResourceKind.IDEA, "u1", {"content": "Same"})
        assert (await store.update_row(ResourceKind.IDEA, row["id"], "u1", {}))["content"] == "Same"

    @pytest.mark.asyncio
    async def test_delete_is_owner_scoped(self, store):
        row = await store.create_row(ResourceKind.IDEA, "u1", {"content": "Keep me"})
        assert await store.delete_row(ResourceKind.IDEA, row["id"], "u2") is False
        assert await store.get_row(ResourceKind.IDEA, row["id"], "u1") is not None

    @pytest.mark.asyncio
    async def test_delete_twice(self, store):
        row = await store.create_row(ResourceKind.IDEA, "u1", {"content": "Bye"})
        assert await store.delete_row(ResourceKind.IDEA, row["id"], "u1") is True
        assert await store.delete_row(ResourceKind.IDEA, row["id"], "u1") is False


class TestBio:
    @pytest.mark.asyncio
    async def test_missing_bio_is_empty(self, store):
        assert await store.get_bio("u1") == ""

    @pytest.mark.asyncio
    async def test_update_replaces_bio(self, store):
        await store.update_bio("u1", "Likes mornings.")
        await store.update_bio("u1", "Likes mornings. Training for a 10k.")
        assert await store.get_bio("u1") == "Likes mornings. Training for a 10k."
        assert await store.get_bio("u2") == ""


class TestWorkerThread:
    @pytest.mark.asyncio
    async def test_statements_run_off_the_event_loop(self, store):
        with patch("src.data.db.asyncio.to_thread", wraps=asyncio.to_thread) as mock_to_thread:
            row = await store.create_row(ResourceKind.IDEA, "u1", {"content": "Learn piano"})
            await store.get_row(ResourceKind.IDEA, row["id"], "u1")
            await store.update_bio("u1", "Night owl.")

        assert mock_to_thread.call_count == 3
        assert mock_to_thread.call_args_list[0].args[0] == store._create_row

    @pytest.mark.asyncio
    async def test_loop_stays_responsive_during_a_slow_statement(self, store):
        ticks = []

        def slow_connect():
            time.sleep(0.2)
            conn = sqlite3.connect(store._db_path)
            conn.row_factory = sqlite3.Row
            return conn

        async def ticker():
            for _ in range(3):
                ticks.append(time.monotonic())
                await asyncio.sleep(0.01)

        started = time.monotonic()
        with patch.object(store, "_connect", side_effect=slow_connect):
            await asyncio.gather(store.get_bio("u1"), ticker())

        # the ticker ran while the statement was still sleeping in its thread
        assert len(ticks) == 3
        assert ticks[-1] - started < 0.15

    @pytest.mark.asyncio
    async def test_errors_in_worker_surface_as_store_error(self, store, tmp_path):
        store._db_path = str(tmp_path / "missing-dir" / "planner.db")
        with pytest.raises(StoreError):
            await store.list_rows(ResourceKind.GOAL, "u1", "created_at")


class TestMigrations:
    def test_timezone_column_added_to_old_schedule_table(self, tmp_db_path):
        conn = sqlite3.connect(tmp_db_path)
        conn.execute("""
            CREATE TABLE schedule_items (
                id TEXT PRIMARY KEY, user_id TEXT NOT NULL, title TEXT NOT NULL,
                description TEXT, priority TEXT, start_time TEXT NOT NULL, end_time TEXT NOT NULL,
                all_day INTEGER NOT NULL DEFAULT 0, recurrence_rule TEXT,
                created_at TEXT NOT NULL, updated_at TEXT NOT NULL
            )
        """)
        conn.commit()
        conn.close()

        SQLiteRowStore(db_path=tmp_db_path, habit_horizon_days=90)

        conn = sqlite3.connect(tmp_db_path)
        cols = {row[1] for row in conn.execute("PRAGMA table_info(schedule_items)")}
        conn.close()
        assert "timezone" in cols

    @pytest.mark.asyncio
    async def test_legacy_habits_become_goals(self, tmp_db_path):
        conn = sqlite3.connect(tmp_db_path)
        conn.execute("""
            CREATE TABLE habits (
                id TEXT PRIMARY KEY, user_id TEXT NOT NULL, title TEXT NOT NULL,
                description TEXT, frequency TEXT, type TEXT, target_days TEXT,
                streak INTEGER DEFAULT 0, created_at TEXT
            )
        """)
        conn.execute(
            "INSERT INTO habits VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            ("h1", "u1", "Stretch", "Ten minutes", "daily", "health",
             json.dumps(["Monday", "Friday"]), 4, "2024-01-01T00:00:00+00:00"),
        )
        conn.commit()
        conn.close()

        store = SQLiteRowStore(db_path=tmp_db_path, habit_horizon_days=30)
        goals = await store.list_rows(ResourceKind.GOAL, "u1", "created_at")

        assert len(goals) == 1
        goal = goals[0]
        assert goal["title"] == "Stretch"
        assert goal["category"] == "Health"
        assert goal["progress"] == 0
        assert goal["target_date"] == (date.today() + timedelta(days=30)).isoformat()
        assert "Ten minutes" in goal["description"]
        assert "Days: Monday, Friday" in goal["description"]
        assert goal["created_at"] == "2024-01-01T00:00:00+00:00"

        conn = sqlite3.connect(tmp_db_path)
        remaining = conn.execute("SELECT name FROM sqlite_master WHERE name = 'habits'").fetchone()
        conn.close()
        assert remaining is None

    def test_habit_to_goal_fields(self):
        habit = LegacyHabit(id="h1", user_id="u1", title="Journal", frequency="weekly", streak=0)
        fields = habit_to_goal_fields(habit, date(2025, 1, 1), 90)
        assert fields["target_date"] == "2025-04-01"
        assert fields["category"] == "Personal"
        assert fields["description"] == "Habit frequency: weekly"
