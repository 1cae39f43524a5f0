"""Shared test fixtures."""

from datetime import datetime

import pytest

from mighty.ports.notifier import SchedulingFailure


class FakeNotifier:
    """In-memory NotificationCapability that records every call."""

    def __init__(self, granted: bool = True):
        self.granted = granted
        self.fail_ids: set[str] = set()
        self.jobs: dict[str, datetime] = {}
        self.keys: dict[str, tuple[str, ...]] = {}
        self.calls: list[tuple[str, str]] = []
        self.permission_requests = 0

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        return self.granted

    async def schedule(self, entry_id, fire_at, title, body, keys=()):
        if entry_id in self.fail_ids:
            raise SchedulingFailure(f"refused {entry_id}")
        self.jobs[entry_id] = fire_at
        self.keys[entry_id] = keys
        self.calls.append(("schedule", entry_id))

    async def cancel(self, entry_id):
        self.jobs.pop(entry_id, None)
        self.keys.pop(entry_id, None)
        self.calls.append(("cancel", entry_id))

    async def cancel_all(self, key):
        entry_ids = [entry_id for entry_id, keys in self.keys.items() if key in keys]
        for entry_id in entry_ids:
            await self.cancel(entry_id)
        return entry_ids

    async def pending(self):
        return dict(self.jobs)


@pytest.fixture
def notifier():
    return FakeNotifier()
