"""Tests for the notification scheduler."""

import asyncio
from datetime import date, datetime, time

import pytest

from mighty.core.entries import Entry, Section
from mighty.scheduler import NotificationScheduler, ResyncResult


@pytest.fixture
def now():
    return datetime(2024, 1, 8, 7, 0)


@pytest.fixture
def scheduler(notifier):
    return NotificationScheduler(notifier)


def make_entry(entry_id: str, day: int = 15, hour: int = 6, section_id: str | None = None) -> Entry:
    return Entry(
        id=entry_id,
        title="Workout",
        date=date(2024, 1, day),
        start_time=time(hour, 0),
        notify_before=True,
        section_id=section_id,
    )


def resync(scheduler, entries, now, sections=None) -> ResyncResult:
    return asyncio.run(scheduler.resync(entries, now=now, sections=sections))


class TestResync:
    def test_schedules_due_entries(self, scheduler, notifier, now):
        result = resync(scheduler, [make_entry("e1"), make_entry("e2", day=16)], now)

        assert sorted(result.scheduled) == ["e1", "e2"]
        assert notifier.jobs["e1"] == datetime(2024, 1, 15, 5, 0)
        assert scheduler.scheduled == notifier.jobs

    def test_second_pass_changes_nothing(self, scheduler, notifier, now):
        entries = [make_entry("e1")]
        resync(scheduler, entries, now)
        notifier.calls.clear()

        result = resync(scheduler, entries, now)

        assert result == ResyncResult()
        assert notifier.calls == []
        assert notifier.permission_requests == 1

    def test_nothing_due_does_not_ask_permission(self, scheduler, notifier, now):
        resync(scheduler, [], now)
        assert notifier.permission_requests == 0

    def test_removed_entry_is_cancelled(self, scheduler, notifier, now):
        resync(scheduler, [make_entry("e1"), make_entry("e2")], now)

        result = resync(scheduler, [make_entry("e2")], now)

        assert result.cancelled == ["e1"]
        assert "e1" not in notifier.jobs
        assert "e1" not in scheduler.scheduled

    def test_cancel_needs_no_permission(self, scheduler, notifier, now):
        resync(scheduler, [make_entry("e1")], now)
        notifier.granted = False

        result = resync(scheduler, [], now)

        assert result.cancelled == ["e1"]
        assert not result.permission_denied
        assert notifier.permission_requests == 1

    def test_moved_entry_is_rescheduled(self, scheduler, notifier, now):
        resync(scheduler, [make_entry("e1", hour=6)], now)

        result = resync(scheduler, [make_entry("e1", hour=7)], now)

        assert result.rescheduled == ["e1"]
        assert result.scheduled == []
        assert result.cancelled == []
        assert notifier.jobs["e1"] == datetime(2024, 1, 15, 6, 0)

    def test_cap_keeps_earliest(self, notifier, now):
        scheduler = NotificationScheduler(notifier, max_pending=1)

        result = resync(scheduler, [make_entry("late", day=20), make_entry("soon", day=9)], now)

        assert result.scheduled == ["soon"]


class TestSectionToggle:
    def test_muted_section_is_cancelled_others_kept(self, scheduler, notifier, now):
        gym = Section(id="gym", name="Gym")
        work = Section(id="work", name="Work")
        entries = [
            make_entry("g1", section_id="gym"),
            make_entry("g2", day=16, section_id="gym"),
            make_entry("w1", section_id="work"),
        ]
        resync(scheduler, entries, now, sections=[gym, work])
        assert set(notifier.jobs) == {"g1", "g2", "w1"}

        gym.notifications_enabled = False
        result = resync(scheduler, entries, now, sections=[gym, work])

        assert sorted(result.cancelled) == ["g1", "g2"]
        assert result.scheduled == []
        assert set(notifier.jobs) == {"w1"}

    def test_cancel_matching_by_section(self, scheduler, notifier, now):
        resync(scheduler, [make_entry("g1", section_id="gym"), make_entry("w1", section_id="work")], now)

        cancelled = asyncio.run(scheduler.cancel_matching("gym"))

        assert cancelled == ["g1"]
        assert set(scheduler.scheduled) == {"w1"}


class TestPermissionDenied:
    def test_nothing_scheduled_or_recorded(self, scheduler, notifier, now):
        notifier.granted = False

        result = resync(scheduler, [make_entry("e1")], now)

        assert result.scheduled == []
        assert result.permission_denied
        assert scheduler.scheduled == {}
        assert notifier.jobs == {}

    def test_later_grant_schedules(self, scheduler, notifier, now):
        notifier.granted = False
        resync(scheduler, [make_entry("e1")], now)

        notifier.granted = True
        result = resync(scheduler, [make_entry("e1")], now)

        assert result.scheduled == ["e1"]
        assert not result.permission_denied

    def test_pending_reschedule_is_cancelled(self, scheduler, notifier, now):
        resync(scheduler, [make_entry("e1", hour=6)], now)
        notifier.granted = False

        result = resync(scheduler, [make_entry("e1", hour=8)], now)

        assert result.permission_denied
        assert result.cancelled == ["e1"]
        assert notifier.jobs == {}


class TestFailures:
    def test_failed_schedule_is_retried(self, scheduler, notifier, now):
        notifier.fail_ids = {"e1"}

        result = resync(scheduler, [make_entry("e1"), make_entry("e2")], now)

        assert result.failed == ["e1"]
        assert result.scheduled == ["e2"]
        assert "e1" not in scheduler.scheduled

        notifier.fail_ids = set()
        retry = resync(scheduler, [make_entry("e1"), make_entry("e2")], now)

        assert retry.scheduled == ["e1"]


class TestRestore:
    def test_restored_reminders_are_not_rescheduled(self, scheduler, notifier, now):
        notifier.jobs = {"e1": datetime(2024, 1, 15, 5, 0)}

        assert asyncio.run(scheduler.restore()) == 1
        result = resync(scheduler, [make_entry("e1")], now)

        assert result == ResyncResult()
        assert notifier.calls == []

    def test_restored_orphan_is_cancelled(self, scheduler, notifier, now):
        notifier.jobs = {"gone": datetime(2024, 1, 15, 5, 0)}
        asyncio.run(scheduler.restore())

        result = resync(scheduler, [], now)

        assert result.cancelled == ["gone"]

    def test_relaunch_with_nothing_kept_schedules_everything(self, notifier, now):
        entries = [make_entry("e1"), make_entry("e2", day=16)]
        resync(NotificationScheduler(notifier), entries, now)
        # An in-memory job store loses its jobs on restart
        notifier.jobs.clear()
        relaunched = NotificationScheduler(notifier)

        assert asyncio.run(relaunched.restore()) == 0
        result = resync(relaunched, entries, now)

        assert sorted(result.scheduled) == ["e1", "e2"]
        assert sorted(notifier.jobs) == ["e1", "e2"]
