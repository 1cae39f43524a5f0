"""Lifecycle trigger points - where app events drive reconciliation and reminders.

Each event runs as one sequential pass: store changes first, then a
reminder resync from the now-current store.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable

from .core.entries import Entry
from .ports.entry_store import EntryStore
from .reconcile import ReconciliationDriver
from .scheduler import NotificationScheduler, ResyncResult
from .session import SessionContext

logger = logging.getLogger(__name__)


@dataclass
class ActivationResult:
    """What an activation pass did."""

    applied: list[str] = field(default_factory=list)
    reminders: ResyncResult = field(default_factory=ResyncResult)


class Lifecycle:
    """Explicit entry points for app activation, edits, deletes and section toggles."""

    def __init__(
        self,
        store: EntryStore,
        driver: ReconciliationDriver,
        scheduler: NotificationScheduler,
        session: SessionContext | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.driver = driver
        self.scheduler = scheduler
        self.session = session or SessionContext()
        self.clock = clock

    def visible_entries(self) -> list[Entry]:
        return self.store.query(self.session.owns)

    async def resync(self, now: datetime | None = None) -> ResyncResult:
        """Re-derive reminders from the store as it is now."""
        now = now or self.clock()
        sections = [s for s in self.store.list_sections() if self.session.owns(s)]
        return await self.scheduler.resync(self.visible_entries(), now=now, sections=sections)

    async def on_activation(self, now: datetime | None = None) -> ActivationResult:
        """App came to the foreground: top up every series, then resync reminders."""
        now = now or self.clock()
        templates = [t for t in self.store.list_templates() if self.session.owns(t)]
        applied = self.driver.reconcile_all(templates, now)
        reminders = await self.resync(now)
        return ActivationResult(applied=applied, reminders=reminders)

    async def save_template(self, template: Entry, now: datetime | None = None) -> Entry:
        """
        Create or edit a recurrence template, then regenerate its group.

        Raises:
            InvalidRuleError: the rule is malformed; nothing is saved.
        """
        now = now or self.clock()
        template = self.driver.save_template(template, now)
        await self.resync(now)
        return template

    async def save_entry(self, entry: Entry, now: datetime | None = None) -> Entry:
        """
        Save a user edit to a single entry.

        Generated instances are flagged as edited so regeneration leaves them
        alone from now on.
        """
        now = now or self.clock()
        if entry.is_instance:
            entry = entry.mark_edited(now)
        else:
            entry = replace(entry, updated_at=now)
        self.store.upsert(self.session.stamp(entry))
        await self.resync(now)
        return entry

    async def delete_entry(self, entry_id: str, now: datetime | None = None) -> list[str]:
        """
        User deleted an entry. Returns deleted ids.

        Deleting a generated instance suppresses its date; deleting a template
        ends the whole series.
        """
        now = now or self.clock()
        entry = self.store.get(entry_id)
        if entry is None:
            return []
        if entry.is_recurrence_template and entry.recurrence_group_id:
            return await self.delete_series(entry.recurrence_group_id, now)

        self.driver.suppress_instance(entry_id)
        await self.resync(now)
        return [entry_id]

    async def delete_series(self, group_id: str, now: datetime | None = None) -> list[str]:
        """Delete a recurring series from now on, keeping its history."""
        now = now or self.clock()
        deleted = self.driver.delete_series(group_id, now)
        await self.scheduler.cancel_matching(group_id)
        await self.resync(now)
        return deleted

    async def set_section_notifications(
        self,
        section_id: str,
        enabled: bool,
        now: datetime | None = None,
    ) -> ResyncResult:
        """
        Switch reminders on or off for every entry in a section.

        Turning them on asks for permission first; if it's refused the section
        stays off and the result reports permission_denied.
        """
        section = self.store.get_section(section_id)
        if section is None:
            raise KeyError(f"Unknown section: {section_id}")

        if enabled and not await self.scheduler.request_permission():
            logger.info(f"Permission denied, reminders for section '{section.name}' stay off")
            return ResyncResult(permission_denied=True)

        self.store.upsert_section(replace(section, notifications_enabled=enabled))

        result = ResyncResult()
        if not enabled:
            result.cancelled = await self.scheduler.cancel_matching(section_id)
        return result.merge(await self.resync(now))
