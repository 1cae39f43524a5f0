"""Shared workflow layer between CLI and Telegram.

Wires config to the store, driver, scheduler and lifecycle, and formats
entries for display.
"""

import uuid
from datetime import date, datetime, time, timedelta
from functools import partial
from zoneinfo import ZoneInfo

from .adapters.file_store import FileEntryStore
from .config import Config
from .core.entries import Entry, RecurrencePattern, RecurrenceRule
from .core.reminders import Reminder, select_due
from .lifecycle import Lifecycle
from .ports.entry_store import EntryStore
from .ports.notifier import NotificationCapability
from .reconcile import ReconciliationDriver
from .scheduler import NotificationScheduler
from .session import SessionContext

WEEKDAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def local_now(config: Config) -> datetime:
    """Naive wall-clock time in the configured zone, the zone entry times are kept in."""
    return datetime.now(ZoneInfo(config.timezone)).replace(tzinfo=None)


def get_store(config: Config) -> FileEntryStore:
    """Resolve the entry store file from config."""
    return FileEntryStore(config.store_path)


def get_driver(config: Config, store: EntryStore) -> ReconciliationDriver:
    return ReconciliationDriver(
        store,
        horizon=config.materialization_horizon,
        session=SessionContext(config.owner_id),
        clock=partial(local_now, config),
    )


def build_lifecycle(config: Config, capability: NotificationCapability, store: EntryStore | None = None) -> Lifecycle:
    """Assemble the lifecycle for a notification capability."""
    store = store or get_store(config)
    scheduler = NotificationScheduler(
        capability,
        lead_time=config.lead_time,
        horizon=config.notification_horizon,
        max_pending=config.max_pending_reminders,
    )
    return Lifecycle(
        store,
        get_driver(config, store),
        scheduler,
        SessionContext(config.owner_id),
        clock=partial(local_now, config),
    )


def upcoming_entries(store: EntryStore, session: SessionContext, days: int = 7, as_of: date | None = None) -> list[Entry]:
    """Dated entries (not templates) from today through the next N days."""
    start = as_of or date.today()
    end = start + timedelta(days=days - 1)
    entries = store.query(
        lambda e: not e.is_recurrence_template and start <= e.date <= end and session.owns(e)
    )
    return sorted(entries, key=lambda e: (e.date, e.start_time or time.min, e.title))


def preview_reminders(config: Config, store: EntryStore, now: datetime | None = None) -> list[Reminder]:
    """Reminders the scheduler would hold right now, earliest first."""
    now = now or local_now(config)
    session = SessionContext(config.owner_id)
    sections = [s for s in store.list_sections() if session.owns(s)]
    due = select_due(
        store.query(session.owns),
        now,
        config.notification_horizon,
        config.lead_time,
        muted_sections={s.id for s in sections if not s.notifications_enabled},
        section_names={s.id: s.name for s in sections},
        max_pending=config.max_pending_reminders,
    )
    return sorted(due.values(), key=lambda r: r.fire_at)


def format_entry_line(entry: Entry) -> str:
    """One display line for an entry."""
    markers = ""
    if entry.is_recurring:
        markers += " ↻"
    if entry.notify_before:
        markers += " 🔔"
    if entry.completed:
        markers += " ✓"
    return f"{entry.format_time():11} {entry.title}{markers}"


def format_upcoming(entries: list[Entry], empty_msg: str = "Nothing scheduled.") -> str:
    """Entries grouped under a heading per day."""
    if not entries:
        return empty_msg

    lines = []
    current_date = None
    for entry in entries:
        if entry.date != current_date:
            if current_date is not None:
                lines.append("")
            lines.append(f"### {entry.date.strftime('%A, %B %d')}")
            current_date = entry.date
        lines.append(f"  {format_entry_line(entry)}  [{entry.id[:8]}]")
    return "\n".join(lines)


def parse_weekdays(values: list[str] | tuple[str, ...]) -> list[int]:
    """Weekday names ("mon", "Wednesday") or numbers (0 = Monday) to 0-6."""
    days = []
    for value in values:
        value = value.strip().lower()
        if value.isdigit():
            days.append(int(value))
            continue
        prefix = value[:3]
        if prefix not in WEEKDAY_NAMES:
            raise ValueError(f"Unknown weekday: {value}")
        days.append(WEEKDAY_NAMES.index(prefix))
    return sorted(set(days))


def build_template(
    title: str,
    start: date,
    pattern: RecurrencePattern | None,
    weekdays: list[int] | None = None,
    start_time: time | None = None,
    end_time: time | None = None,
    notify_before: bool = False,
    section_id: str | None = None,
    interval: int = 1,
    end_date: date | None = None,
    occurrence_count: int | None = None,
) -> Entry:
    """New recurrence template; the lifecycle assigns its group on save."""
    return Entry(
        id=str(uuid.uuid4()),
        title=title.strip(),
        date=start,
        start_time=start_time,
        end_time=end_time,
        notify_before=notify_before and start_time is not None,
        section_id=section_id,
        is_recurrence_template=True,
        rule=RecurrenceRule(
            pattern=pattern,
            interval=interval,
            weekdays=weekdays or [],
            end_date=end_date,
            occurrence_count=occurrence_count,
        ),
    )
