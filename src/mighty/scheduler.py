"""Notification scheduler - keeps platform reminders in step with the entry set."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .core.entries import Entry, Section
from .core.reminders import DEFAULT_MAX_PENDING, Reminder, diff_schedule, select_due
from .ports.notifier import NotificationCapability, SchedulingFailure

logger = logging.getLogger(__name__)

DEFAULT_LEAD_TIME = timedelta(hours=1)
DEFAULT_NOTIFICATION_HORIZON = timedelta(weeks=2)


@dataclass
class ResyncResult:
    """
    Outcome of one resync pass.

    permission_denied is a normal state, not an error: nothing was scheduled
    and the caller may ask the user to grant permission.
    """

    scheduled: list[str] = field(default_factory=list)
    cancelled: list[str] = field(default_factory=list)
    rescheduled: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    permission_denied: bool = False

    def merge(self, other: "ResyncResult") -> "ResyncResult":
        return ResyncResult(
            scheduled=self.scheduled + other.scheduled,
            cancelled=self.cancelled + other.cancelled,
            rescheduled=self.rescheduled + other.rescheduled,
            failed=self.failed + other.failed,
            permission_denied=self.permission_denied or other.permission_denied,
        )


class NotificationScheduler:
    """
    Derives the due set from entries and drives the notification capability.

    Tracks what it has scheduled by entry id. That record only changes once
    the platform confirms a call, so an interrupted pass is safe to re-run.
    """

    def __init__(
        self,
        capability: NotificationCapability,
        lead_time: timedelta = DEFAULT_LEAD_TIME,
        horizon: timedelta = DEFAULT_NOTIFICATION_HORIZON,
        max_pending: int = DEFAULT_MAX_PENDING,
    ):
        self.capability = capability
        self.lead_time = lead_time
        self.horizon = horizon
        self.max_pending = max_pending
        self._scheduled: dict[str, Reminder] = {}

    @property
    def scheduled(self) -> dict[str, datetime]:
        """Currently scheduled fire times by entry id."""
        return {entry_id: r.fire_at for entry_id, r in self._scheduled.items()}

    async def restore(self) -> int:
        """
        Seed the schedule record from what the platform still holds (after relaunch).

        A platform that keeps nothing across restarts reports no pending
        reminders, leaving the record empty so the next resync schedules
        everything due.
        """
        try:
            pending = await self.capability.pending()
        except SchedulingFailure as e:
            logger.warning(f"Could not read pending reminders: {e}")
            return 0
        for entry_id, fire_at in pending.items():
            self._scheduled.setdefault(entry_id, Reminder(entry_id=entry_id, fire_at=fire_at))
        return len(pending)

    async def request_permission(self) -> bool:
        try:
            return await self.capability.request_permission()
        except SchedulingFailure as e:
            logger.warning(f"Permission request failed: {e}")
            return False

    async def resync(
        self,
        entries: list[Entry],
        now: datetime | None = None,
        horizon: timedelta | None = None,
        sections: list[Section] | None = None,
    ) -> ResyncResult:
        """
        Bring platform reminders in line with the current entries.

        New due entries are scheduled, dropped ones cancelled, and entries
        whose fire time moved are cancelled then rescheduled. Failed calls are
        reported and retried on the next pass.
        """
        now = now or datetime.now()
        sections = sections or []
        due = select_due(
            entries,
            now,
            horizon or self.horizon,
            self.lead_time,
            muted_sections={s.id for s in sections if not s.notifications_enabled},
            section_names={s.id: s.name for s in sections},
            max_pending=self.max_pending,
        )
        diff = diff_schedule(self._scheduled, due)
        result = ResyncResult()

        # Cancelling never needs permission
        await asyncio.gather(*(self._cancel(entry_id, result.cancelled, result) for entry_id in diff.to_cancel))

        if diff.to_schedule or diff.to_reschedule:
            if not await self.request_permission():
                # Old fire times must not stay active; the entries are picked up
                # as new once permission is granted
                await asyncio.gather(
                    *(self._cancel(r.entry_id, result.cancelled, result) for r in diff.to_reschedule)
                )
                result.permission_denied = True
                logger.info(f"Notification permission denied, {len(due)} reminders not scheduled")
                return result

            await asyncio.gather(
                *(self._schedule(r, result.scheduled, result) for r in diff.to_schedule),
                *(self._reschedule(r, result) for r in diff.to_reschedule),
            )

        if not diff.is_empty:
            logger.info(
                f"Reminders resynced: {len(result.scheduled)} scheduled, "
                f"{len(result.cancelled)} cancelled, {len(result.rescheduled)} rescheduled, "
                f"{len(result.failed)} failed"
            )
        return result

    async def cancel_matching(self, key: str) -> list[str]:
        """Bulk-cancel every reminder tagged with a section or group id."""
        try:
            cancelled = await self.capability.cancel_all(key)
        except SchedulingFailure as e:
            logger.error(f"Failed to cancel reminders for {key}: {e}")
            return []

        ids = set(cancelled) | {entry_id for entry_id, r in self._scheduled.items() if key in r.keys}
        for entry_id in ids:
            self._scheduled.pop(entry_id, None)
        return sorted(ids)

    async def _cancel(self, entry_id: str, bucket: list[str], result: ResyncResult) -> bool:
        try:
            await self.capability.cancel(entry_id)
        except SchedulingFailure as e:
            logger.error(f"Failed to cancel reminder {entry_id}: {e}")
            result.failed.append(entry_id)
            return False
        self._scheduled.pop(entry_id, None)
        bucket.append(entry_id)
        return True

    async def _schedule(self, reminder: Reminder, bucket: list[str], result: ResyncResult) -> bool:
        try:
            await self.capability.schedule(
                reminder.entry_id,
                reminder.fire_at,
                reminder.title,
                reminder.body,
                keys=reminder.keys,
            )
        except SchedulingFailure as e:
            logger.error(f"Failed to schedule reminder {reminder.entry_id} at {reminder.fire_at}: {e}")
            result.failed.append(reminder.entry_id)
            return False
        self._scheduled[reminder.entry_id] = reminder
        bucket.append(reminder.entry_id)
        return True

    async def _reschedule(self, reminder: Reminder, result: ResyncResult) -> None:
        # Scratch list: a reschedule is reported once, under rescheduled
        cancelled: list[str] = []
        if await self._cancel(reminder.entry_id, cancelled, result):
            await self._schedule(reminder, result.rescheduled, result)
