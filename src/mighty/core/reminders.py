"""Pure reminder logic - due-set selection and schedule diffing, no I/O."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .entries import Entry

REMINDER_TITLE = "Activity Reminder"

# Platforms cap pending local notifications (iOS allows 64); leave headroom
DEFAULT_MAX_PENDING = 60


@dataclass(frozen=True)
class Reminder:
    """A reminder notification derived from an entry. Keyed by entry id."""

    entry_id: str
    fire_at: datetime
    title: str = REMINDER_TITLE
    body: str = ""
    keys: tuple[str, ...] = ()


@dataclass
class ScheduleDiff:
    """What has to change to move from the previous schedule to the due set."""

    to_schedule: list[Reminder] = field(default_factory=list)
    to_cancel: list[str] = field(default_factory=list)
    to_reschedule: list[Reminder] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.to_schedule or self.to_cancel or self.to_reschedule)


def format_lead_time(lead_time: timedelta) -> str:
    """Human-readable lead time: "1 hour", "30 minutes", "1 hour 15 minutes"."""
    total_minutes = int(lead_time.total_seconds() // 60)
    hours, minutes = divmod(total_minutes, 60)
    parts = []
    if hours:
        parts.append(f"{hours} hour" + ("s" if hours != 1 else ""))
    if minutes or not parts:
        parts.append(f"{minutes} minute" + ("s" if minutes != 1 else ""))
    return " ".join(parts)


def fire_time(entry: Entry, lead_time: timedelta) -> datetime | None:
    """When the reminder for an entry goes off, or None for all-day entries."""
    starts_at = entry.starts_at()
    if starts_at is None:
        return None
    return starts_at - lead_time


def reminder_keys(entry: Entry) -> tuple[str, ...]:
    """Bulk-cancellation keys: the entry's section and recurrence group."""
    return tuple(k for k in (entry.section_id, entry.recurrence_group_id) if k)


def build_reminder(entry: Entry, lead_time: timedelta, section_name: str | None = None) -> Reminder | None:
    """Reminder for a single entry, ignoring horizon and opt-in checks."""
    fire_at = fire_time(entry, lead_time)
    if fire_at is None:
        return None
    body = f"{entry.title} in {format_lead_time(lead_time)}"
    if section_name:
        body = f"{section_name}: {body}"
    return Reminder(
        entry_id=entry.id,
        fire_at=fire_at,
        body=body,
        keys=reminder_keys(entry),
    )


def is_due(
    entry: Entry,
    now: datetime,
    horizon: timedelta,
    lead_time: timedelta,
    muted_sections: frozenset[str] | set[str] = frozenset(),
) -> bool:
    """
    Whether an entry belongs in the due set.

    Opted in, timed, starting within [now, now + horizon], with a fire time
    still ahead, and not in a section whose reminders are switched off.
    """
    if entry.is_recurrence_template or not entry.notify_before:
        return False
    starts_at = entry.starts_at()
    if starts_at is None:
        return False
    if not now <= starts_at <= now + horizon:
        return False
    if entry.section_id is not None and entry.section_id in muted_sections:
        return False
    return starts_at - lead_time > now


def select_due(
    entries: list[Entry],
    now: datetime,
    horizon: timedelta,
    lead_time: timedelta,
    muted_sections: frozenset[str] | set[str] = frozenset(),
    section_names: dict[str, str] | None = None,
    max_pending: int = DEFAULT_MAX_PENDING,
) -> dict[str, Reminder]:
    """
    Build the due set keyed by entry id.

    Pure function - no I/O. When more entries qualify than the platform can
    hold, the earliest fire times win.
    """
    section_names = section_names or {}
    reminders = []
    for entry in entries:
        if not is_due(entry, now, horizon, lead_time, muted_sections):
            continue
        reminder = build_reminder(entry, lead_time, section_names.get(entry.section_id or ""))
        if reminder is not None:
            reminders.append(reminder)

    reminders.sort(key=lambda r: (r.fire_at, r.entry_id))
    return {r.entry_id: r for r in reminders[:max_pending]}


def diff_schedule(previous: dict[str, Reminder], due: dict[str, Reminder]) -> ScheduleDiff:
    """
    Diff the previously scheduled reminders against the new due set.

    Pure function - no I/O. Ids in both sets with the same fire time are left
    alone; a changed fire time means cancel-then-reschedule.
    """
    diff = ScheduleDiff()
    for entry_id, reminder in due.items():
        old = previous.get(entry_id)
        if old is None:
            diff.to_schedule.append(reminder)
        elif old.fire_at != reminder.fire_at:
            diff.to_reschedule.append(reminder)
        else:
            diff.unchanged.append(entry_id)
    diff.to_cancel = [entry_id for entry_id in previous if entry_id not in due]
    return diff
