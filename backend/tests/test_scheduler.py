# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Tests for the recurring job schedule."""
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
import pytz

from services.scheduler_service import (
    DEFAULT_SCHEDULE,
    RecurringSchedule,
    ScheduleEntry,
    calculate_next_run,
)

# A Sunday
NOW = datetime(2025, 6, 1, 0, 30, tzinfo=pytz.UTC)


class TestCalculateNextRun:
    def test_next_run_in_utc(self):
        assert calculate_next_run("0 1 * * *", "UTC", NOW) == datetime(2025, 6, 1, 1, 0, tzinfo=pytz.UTC)

    def test_expression_is_interpreted_in_timezone(self):
        now = datetime(2025, 6, 1, 12, 0, tzinfo=pytz.UTC)

        next_run = calculate_next_run("0 2 * * *", "America/New_York", now)

        assert next_run == datetime(2025, 6, 2, 6, 0, tzinfo=pytz.UTC)
        assert next_run.tzinfo is not None

    def test_invalid_expression(self):
        with pytest.raises(ValueError):
            calculate_next_run("not a cron", "UTC", NOW)

    def test_unknown_timezone(self):
        with pytest.raises(ValueError):
            calculate_next_run("0 1 * * *", "Mars/Olympus", NOW)


class TestRecurringSchedule:
    def test_register_replaces_entries(self):
        schedule = RecurringSchedule(MagicMock())

        schedule.register(now=NOW)
        schedule.register(now=NOW)

        assert len(schedule.entries) == len(DEFAULT_SCHEDULE) == 6
        assert all(entry.next_run_at > NOW for entry in schedule.entries.values())

    def test_register_copies_payloads(self):
        schedule = RecurringSchedule(MagicMock())
        schedule.register(now=NOW)

        schedule.entries["daily-deep-scan"].payload["scanLimit"] = 5

        assert dict(DEFAULT_SCHEDULE[2].payload) == {"scanLimit": 100}

    def test_run_due_enqueues_and_advances(self):
        queue = MagicMock()
        queue.enqueue.return_value = 42
        schedule = RecurringSchedule(queue)
        schedule.register(now=NOW)
        later = NOW + timedelta(minutes=31)

        job_ids = schedule.run_due(later)

        assert job_ids == [42]
        queue.enqueue.assert_called_once_with("awesome-lists", {})
        entry = schedule.entries["daily-awesome-lists"]
        assert entry.last_run_at == later
        assert entry.next_run_at == datetime(2025, 6, 2, 1, 0, tzinfo=pytz.UTC)

    def test_nothing_due(self):
        queue = MagicMock()
        schedule = RecurringSchedule(queue)
        schedule.register(now=NOW)

        assert schedule.run_due(NOW) == []
        queue.enqueue.assert_not_called()

    def test_enqueue_failure_does_not_stop_other_entries(self):
        queue = MagicMock()
        queue.enqueue.side_effect = [ValueError("no handler"), 7]
        schedule = RecurringSchedule(queue)
        schedule.register([
            ScheduleEntry("first", "deep-scan", "0 1 * * *"),
            ScheduleEntry("second", "curate", "0 1 * * *"),
        ], now=NOW)

        job_ids = schedule.run_due(NOW + timedelta(hours=1))

        assert job_ids == [7]
        assert schedule.entries["first"].next_run_at > NOW + timedelta(hours=1)

    def test_invalid_entry_is_rejected(self):
        schedule = RecurringSchedule(MagicMock())

        with pytest.raises(ValueError):
            schedule.register([ScheduleEntry("bad", "curate", "every day")])

    def test_stats(self):
        schedule = RecurringSchedule(MagicMock(), timezone="Europe/Berlin")
        schedule.register(now=NOW)

        stats = schedule.get_stats()

        assert stats["is_running"] is False
        assert stats["timezone"] == "Europe/Berlin"
        assert {e["name"] for e in stats["entries"]} == {e.name for e in DEFAULT_SCHEDULE}
