"""Tests for src.core.resource_service: argument normalization before storage."""

from datetime import date, datetime, timedelta

import pytest

from src.core.resource_service import ResourceService
from src.core.tools import (
    CreateGoalArgs,
    CreateIdeaArgs,
    CreateResourceArgs,
    CreateScheduleItemArgs,
    UpdateGoalArgs,
    UpdateIdeaArgs,
    UpdateScheduleItemArgs,
)
from src.ports.store_port import ResourceKind

TODAY = date(2025, 5, 14)  # a Wednesday


async def _dentist(service, **overrides):
    fields = {"title": "Dentist", "date": "2025-05-15", "start_time": "3:00 PM", "end_time": "4:30 PM"}
    fields.update(overrides)
    result = await service.create_schedule_item("u1", CreateScheduleItemArgs(**fields), TODAY)
    return result.row


class TestCreateScheduleItem:
    @pytest.mark.asyncio
    async def test_times_are_normalized(self, service):
        result = await service.create_schedule_item(
            "u1", CreateScheduleItemArgs(title="Dentist", date="2025-05-15", start_time="3pm"), TODAY,
        )
        assert result.row["start_time"] == "2025-05-15T15:00:00+00:00"
        assert result.row["end_time"] == "2025-05-15T16:00:00+00:00"
        assert result.row["timezone"] == "UTC"
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_missing_date_uses_request_date(self, service):
        result = await service.create_schedule_item(
            "u1", CreateScheduleItemArgs(title="Call mom", start_time="18:00"), TODAY,
        )
        assert result.row["start_time"].startswith("2025-05-14T18:00")

    @pytest.mark.asyncio
    async def test_unreadable_date_falls_back_with_warning(self, service):
        result = await service.create_schedule_item(
            "u1", CreateScheduleItemArgs(title="Call", date="next week", start_time="18:00"), TODAY,
        )
        assert result.row["start_time"].startswith("2025-05-14")
        assert any("next week" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_end_before_start_is_forced(self, service):
        row = await _dentist(service, end_time="2:00 PM")
        assert row["end_time"] == "2025-05-15T16:00:00+00:00"

    @pytest.mark.asyncio
    async def test_legacy_recurrence_fields(self, service):
        row = await _dentist(service, recurring=True, frequency="weekly", repeat_days=["Monday", "Wednesday"])
        assert row["recurrence_rule"] == "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE"

    @pytest.mark.asyncio
    async def test_legacy_recurring_defaults_to_daily(self, service):
        row = await _dentist(service, recurring=True)
        assert row["recurrence_rule"] == "FREQ=DAILY;INTERVAL=1"

    @pytest.mark.asyncio
    async def test_recurrence_rule_wins_over_legacy_fields(self, service):
        row = await _dentist(service, recurrence_rule="FREQ=MONTHLY", recurring=True, frequency="daily")
        assert row["recurrence_rule"] == "FREQ=MONTHLY;INTERVAL=1"

    @pytest.mark.asyncio
    async def test_invalid_rule_saves_one_off_with_warning(self, service):
        result = await service.create_schedule_item(
            "u1",
            CreateScheduleItemArgs(title="Yoga", start_time="7:00", recurrence_rule="whenever I feel like it"),
            TODAY,
        )
        assert result.row["recurrence_rule"] is None
        assert result.warnings


class TestUpdateScheduleItem:
    @pytest.mark.asyncio
    async def test_start_change_keeps_day_and_duration(self, service):
        row = await _dentist(service)
        result = await service.update_schedule_item(
            "u1", UpdateScheduleItemArgs(id=row["id"], start_time="10:00"), TODAY,
        )
        assert result.row["start_time"] == "2025-05-15T10:00:00+00:00"
        assert result.row["end_time"] == "2025-05-15T11:30:00+00:00"

    @pytest.mark.asyncio
    async def test_end_change_keeps_start(self, service):
        row = await _dentist(service)
        result = await service.update_schedule_item(
            "u1", UpdateScheduleItemArgs(id=row["id"], end_time="6:00 PM"), TODAY,
        )
        assert result.row["start_time"] == "2025-05-15T15:00:00+00:00"
        assert result.row["end_time"] == "2025-05-15T18:00:00+00:00"

    @pytest.mark.asyncio
    async def test_date_change_keeps_times(self, service):
        row = await _dentist(service)
        result = await service.update_schedule_item(
            "u1", UpdateScheduleItemArgs(id=row["id"], date="2025-05-20"), TODAY,
        )
        assert result.row["start_time"] == "2025-05-20T15:00:00+00:00"
        assert result.row["end_time"] == "2025-05-20T16:30:00+00:00"

    @pytest.mark.asyncio
    async def test_date_move_across_clock_change_keeps_real_duration(self, store):
        service = ResourceService(store, timezone="America/New_York")
        created = await service.create_schedule_item(
            "u1",
            CreateScheduleItemArgs(title="Night shift", date="2025-11-01", start_time="00:30", end_time="02:30"),
            TODAY,
        )
        result = await service.update_schedule_item(
            "u1", UpdateScheduleItemArgs(id=created.row["id"], date="2025-11-02"), TODAY,
        )
        start = datetime.fromisoformat(result.row["start_time"])
        end = datetime.fromisoformat(result.row["end_time"])
        assert result.row["start_time"] == "2025-11-02T00:30:00-04:00"
        assert end - start == timedelta(hours=2)
        assert service.format_schedule_item(result.row, date(2025, 11, 2))["end_time"] == "1:30 AM"

    @pytest.mark.asyncio
    async def test_title_only_leaves_times_and_rule(self, service):
        row = await _dentist(service, recurrence_rule="FREQ=YEARLY")
        result = await service.update_schedule_item(
            "u1", UpdateScheduleItemArgs(id=row["id"], title="Dentist (checkup)"), TODAY,
        )
        assert result.row["title"] == "Dentist (checkup)"
        assert result.row["start_time"] == row["start_time"]
        assert result.row["recurrence_rule"] == "FREQ=YEARLY;INTERVAL=1"

    @pytest.mark.asyncio
    async def test_empty_rule_clears_recurrence(self, service):
        row = await _dentist(service, recurrence_rule="FREQ=DAILY")
        result = await service.update_schedule_item(
            "u1", UpdateScheduleItemArgs(id=row["id"], recurrence_rule=""), TODAY,
        )
        assert result.row["recurrence_rule"] is None

    @pytest.mark.asyncio
    async def test_other_owner_gets_no_row(self, service):
        row = await _dentist(service)
        result = await service.update_schedule_item(
            "u2", UpdateScheduleItemArgs(id=row["id"], title="Mine now"), TODAY,
        )
        assert result.row is None


class TestScheduleDisplay:
    @pytest.mark.asyncio
    async def test_format_schedule_item(self, service):
        row = await _dentist(service, recurrence_rule="FREQ=WEEKLY;BYDAY=TH")
        view = service.format_schedule_item(row, date(2025, 5, 22))
        assert view["date"] == "2025-05-15"
        assert view["start_time"] == "3:00 PM"
        assert view["end_time"] == "4:30 PM"
        assert view["recurring"] is True
        assert view["repeat_days"] == ["Thursday"]
        assert view["occurs_today"] is True

    @pytest.mark.asyncio
    async def test_schedule_for_date_includes_recurring(self, service):
        await _dentist(service, title="One-off")
        await _dentist(service, title="Thursdays", recurrence_rule="FREQ=WEEKLY;BYDAY=TH")
        rows = await service.schedule_for_date("u1", date(2025, 5, 22))
        assert [r["title"] for r in rows] == ["Thursdays"]


class TestIdeasGoalsResources:
    @pytest.mark.asyncio
    async def test_idea_update_is_partial(self, service):
        created = (await service.create_idea("u1", CreateIdeaArgs(content="Start a blog", title="Blog"))).row
        updated = (await service.update_idea("u1", UpdateIdeaArgs(id=created["id"], content="Start a newsletter"))).row
        assert updated["content"] == "Start a newsletter"
        assert updated["title"] == "Blog"

    @pytest.mark.asyncio
    async def test_ideas_listed_newest_first(self, service):
        await service.create_idea("u1", CreateIdeaArgs(content="first"))
        await service.create_idea("u1", CreateIdeaArgs(content="second"))
        rows = await service.list_rows(ResourceKind.IDEA, "u1")
        assert [r["content"] for r in rows] == ["second", "first"]

    @pytest.mark.asyncio
    async def test_goal_progress_is_clamped(self, service):
        result = await service.create_goal(
            "u1", CreateGoalArgs(title="Marathon", target_date="2025-10-01", progress=150), TODAY,
        )
        assert result.row["progress"] == 100
        assert result.row["category"] == "Personal"
        assert result.warnings

    @pytest.mark.asyncio
    async def test_goal_bad_target_date_falls_back(self, service):
        result = await service.create_goal("u1", CreateGoalArgs(title="Learn Go", target_date="someday"), TODAY)
        assert result.row["target_date"] == "2025-08-12"
        assert any("someday" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_goal_update_progress(self, service):
        goal = (await service.create_goal("u1", CreateGoalArgs(title="Read", target_date="2025-12-31"), TODAY)).row
        result = await service.update_goal("u1", UpdateGoalArgs(id=goal["id"], progress=40), TODAY)
        assert result.row["progress"] == 40
        assert result.row["title"] == "Read"

    @pytest.mark.asyncio
    async def test_resource_category_inferred(self, service):
        result = await service.create_resource(
            "u1", CreateResourceArgs(title="Intro talk", url="https://www.youtube.com/watch?v=abc"),
        )
        assert result.row["category"] == "Video"
        assert result.row["relevance_score"] == 50
        assert result.row["description"] == ""

    @pytest.mark.asyncio
    async def test_bio_is_stripped(self, service):
        assert await service.update_bio("u1", "  Night owl.  ") == "Night owl."
        assert await service.get_bio("u1") == "Night owl."
