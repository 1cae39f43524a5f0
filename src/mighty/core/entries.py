"""Pure entry domain model - no I/O dependencies."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from enum import Enum


class RecurrencePattern(str, Enum):
    """How often a recurring entry repeats."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

    @property
    def display_name(self) -> str:
        labels = {
            "daily": "Daily",
            "weekly": "Weekly",
            "biweekly": "Every 2 Weeks",
            "monthly": "Monthly",
        }
        return labels[self.value]


@dataclass
class RecurrenceRule:
    """
    Recurrence rule carried by a template.

    Weekdays use Python's numbering (0 = Monday). The template's own date is
    the anchor; end_date is inclusive.
    """

    pattern: RecurrencePattern | None = None
    interval: int = 1
    weekdays: list[int] = field(default_factory=list)
    dates: list[date] = field(default_factory=list)
    end_date: date | None = None
    occurrence_count: int | None = None

    def to_dict(self) -> dict:
        return {
            "pattern": self.pattern.value if self.pattern else None,
            "interval": self.interval,
            "weekdays": list(self.weekdays),
            "dates": [d.isoformat() for d in self.dates],
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "occurrence_count": self.occurrence_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecurrenceRule":
        pattern = data.get("pattern")
        end_date = data.get("end_date")
        return cls(
            pattern=RecurrencePattern(pattern) if pattern else None,
            interval=data.get("interval", 1) or 1,
            weekdays=list(data.get("weekdays") or []),
            dates=[date.fromisoformat(d) for d in data.get("dates") or []],
            end_date=date.fromisoformat(end_date) if end_date else None,
            occurrence_count=data.get("occurrence_count"),
        )


@dataclass
class Section:
    """A user-defined section grouping entries (e.g. "Gym")."""

    id: str
    name: str
    notifications_enabled: bool = True
    owner_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "notifications_enabled": self.notifications_enabled,
            "owner_id": self.owner_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Section":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            notifications_enabled=data.get("notifications_enabled", True),
            owner_id=data.get("owner_id"),
        )


@dataclass
class Entry:
    """
    A tracked entry.

    Recurrence templates and their materialized instances share this record
    type. A template has is_recurrence_template=True and a rule; an instance
    carries the template's recurrence_group_id and the rule date it was
    generated for (occurrence_date).
    """

    id: str
    title: str
    date: date
    start_time: time | None = None
    end_time: time | None = None
    notify_before: bool = False
    section_id: str | None = None
    owner_id: str | None = None
    notes: str | None = None
    rating: int | None = None
    completed: bool = False
    edited: bool = False
    recurrence_group_id: str | None = None
    is_recurrence_template: bool = False
    rule: RecurrenceRule | None = None
    occurrence_date: date | None = None
    excluded_dates: list[date] = field(default_factory=list)
    updated_at: datetime | None = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_group_id is not None

    @property
    def is_instance(self) -> bool:
        return self.is_recurring and not self.is_recurrence_template

    @property
    def user_touched(self) -> bool:
        """Edited or completed instances belong to the user, not to the rule."""
        return self.edited or self.completed

    @property
    def slot(self) -> date:
        """The rule date this entry stands for."""
        return self.occurrence_date or self.date

    def starts_at(self) -> datetime | None:
        """Full start datetime, or None for all-day entries."""
        if self.start_time is None:
            return None
        return datetime.combine(self.date, self.start_time)

    def duration_minutes(self) -> int | None:
        if self.start_time is None or self.end_time is None:
            return None
        start = datetime.combine(self.date, self.start_time)
        end = datetime.combine(self.date, self.end_time)
        return int((end - start).total_seconds() / 60)

    def is_elapsed(self, now: datetime) -> bool:
        return is_elapsed(self.date, self.start_time, now)

    def format_time(self) -> str:
        if self.start_time is None:
            return "All day"
        if self.end_time is not None:
            return f"{self.start_time.strftime('%H:%M')}-{self.end_time.strftime('%H:%M')}"
        return self.start_time.strftime("%H:%M")

    def mark_edited(self, now: datetime | None = None) -> "Entry":
        """Return a copy flagged as user-edited."""
        return replace(self, edited=True, updated_at=now or datetime.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "date": self.date.isoformat(),
            "start_time": self.start_time.isoformat(timespec="minutes") if self.start_time else None,
            "end_time": self.end_time.isoformat(timespec="minutes") if self.end_time else None,
            "notify_before": self.notify_before,
            "section_id": self.section_id,
            "owner_id": self.owner_id,
            "notes": self.notes,
            "rating": self.rating,
            "completed": self.completed,
            "edited": self.edited,
            "recurrence_group_id": self.recurrence_group_id,
            "is_recurrence_template": self.is_recurrence_template,
            "rule": self.rule.to_dict() if self.rule else None,
            "occurrence_date": self.occurrence_date.isoformat() if self.occurrence_date else None,
            "excluded_dates": [d.isoformat() for d in self.excluded_dates],
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Entry":
        """
        Create an Entry from its stored form.

        Fields added in later versions are optional and default to values
        that keep older records behaving as before.
        """

        def _date(key: str) -> date | None:
            value = data.get(key)
            return date.fromisoformat(value) if value else None

        def _time(key: str) -> time | None:
            value = data.get(key)
            return time.fromisoformat(value) if value else None

        updated_at = data.get("updated_at")
        rule = data.get("rule")
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            date=date.fromisoformat(data["date"]),
            start_time=_time("start_time"),
            end_time=_time("end_time"),
            notify_before=data.get("notify_before", False),
            section_id=data.get("section_id"),
            owner_id=data.get("owner_id"),
            notes=data.get("notes"),
            rating=data.get("rating"),
            completed=data.get("completed", False),
            edited=data.get("edited", False),
            recurrence_group_id=data.get("recurrence_group_id"),
            is_recurrence_template=data.get("is_recurrence_template", False),
            rule=RecurrenceRule.from_dict(rule) if rule else None,
            occurrence_date=_date("occurrence_date"),
            excluded_dates=[date.fromisoformat(d) for d in data.get("excluded_dates") or []],
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )


@dataclass
class InstanceDraft:
    """An instance the engine wants created. The driver assigns its id."""

    recurrence_group_id: str
    occurrence_date: date
    title: str
    start_time: time | None
    end_time: time | None
    notify_before: bool
    section_id: str | None
    owner_id: str | None
    notes: str | None = None

    def to_entry(self, entry_id: str, now: datetime | None = None) -> Entry:
        return Entry(
            id=entry_id,
            title=self.title,
            date=self.occurrence_date,
            start_time=self.start_time,
            end_time=self.end_time,
            notify_before=self.notify_before,
            section_id=self.section_id,
            owner_id=self.owner_id,
            notes=self.notes,
            recurrence_group_id=self.recurrence_group_id,
            occurrence_date=self.occurrence_date,
            updated_at=now,
        )


def is_elapsed(day: date, start_time: time | None, now: datetime) -> bool:
    """
    Whether an occurrence lies in the past relative to now.

    Timed occurrences elapse at their start time; all-day occurrences elapse
    once their day is over.
    """
    if start_time is None:
        return day < now.date()
    return datetime.combine(day, start_time) < now


def filter_by_owner(entries: list[Entry], owner_id: str | None) -> list[Entry]:
    """Entries visible to an owner. None means local-only data (no filtering)."""
    if owner_id is None:
        return entries
    return [e for e in entries if e.owner_id in (owner_id, None)]
