"""Tests for src.data.models: typed views over store rows."""

from datetime import date

import pytest

from src.core.recurrence import Frequency
from src.core.tools import TOOL_CATALOG, ToolCallError, parse_tool_call
from src.data.models import PRIORITIES, RESOURCE_CATEGORIES, ScheduleItem


class TestScheduleItem:
    def _row(self, **overrides):
        row = {
            "id": "s1",
            "user_id": "u1",
            "title": "Gym",
            "start_time": "2025-05-14T18:00:00+00:00",
            "end_time": "2025-05-14T19:00:00+00:00",
            "all_day": 0,
            "recurrence_rule": "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE",
            "timezone": "UTC",
            "created_at": "2025-05-01T00:00:00+00:00",
            "updated_at": "2025-05-01T00:00:00+00:00",
            "unexpected_column": "ignored",
        }
        row.update(overrides)
        return row

    def test_from_row_ignores_unknown_columns(self):
        item = ScheduleItem.from_row(self._row())
        assert item.title == "Gym"
        assert not hasattr(item, "unexpected_column")

    def test_all_day_is_coerced_to_bool(self):
        assert ScheduleItem.from_row(self._row(all_day=1)).all_day is True
        assert ScheduleItem.from_row(self._row(all_day=0)).all_day is False

    def test_recurrence_is_parsed(self):
        rule = ScheduleItem.from_row(self._row()).recurrence
        assert rule.frequency is Frequency.WEEKLY
        assert rule.day_names == ["Monday", "Wednesday"]

    def test_invalid_recurrence_reads_as_none(self):
        assert ScheduleItem.from_row(self._row(recurrence_rule="weekly please")).recurrence is None

    def test_unknown_timezone_reads_as_none(self):
        item = ScheduleItem.from_row(self._row(timezone="Mars/Olympus"))
        assert item.zone is None
        assert item.local_date == date(2025, 5, 14)

    def test_malformed_start(self):
        item = ScheduleItem.from_row(self._row(start_time="soon"))
        assert item.start is None
        assert item.local_date is None


class TestVocabularies:
    def test_tool_arguments_share_the_model_vocabularies(self):
        assert PRIORITIES == ("low", "medium", "high")
        assert RESOURCE_CATEGORIES == ("Article", "Video", "Course", "Tool")

        schedule_props = TOOL_CATALOG["create_schedule_item"].parameters["properties"]
        resource_props = TOOL_CATALOG["create_resource"].parameters["properties"]
        assert schedule_props["priority"]["enum"] == list(PRIORITIES)
        assert resource_props["category"]["enum"] == list(RESOURCE_CATEGORIES)

    def test_values_outside_the_vocabulary_are_rejected(self):
        with pytest.raises(ToolCallError):
            parse_tool_call("create_schedule_item", {"title": "Gym", "start_time": "18:00", "priority": "urgent"})
        with pytest.raises(ToolCallError):
            parse_tool_call("create_resource", {"title": "Docs", "url": "https://x.dev", "category": "Podcast"})
