"""Reconciliation driver - applies recurrence plans to the entry store."""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable

from .core.entries import Entry
from .core.recurrence import InvalidRuleError, RecurrencePlan, plan, validate_template
from .ports.entry_store import EntryStore, StorageFailure
from .session import SessionContext

logger = logging.getLogger(__name__)

DEFAULT_MATERIALIZATION_HORIZON = timedelta(days=90)


def _new_id() -> str:
    return str(uuid.uuid4())


class ReconciliationDriver:
    """
    Runs the recurrence engine against the store, one group at a time.

    Each group commits in its own store transaction; a storage failure in one
    group is logged and the remaining groups still run.
    """

    def __init__(
        self,
        store: EntryStore,
        horizon: timedelta = DEFAULT_MATERIALIZATION_HORIZON,
        session: SessionContext | None = None,
        id_factory: Callable[[], str] = _new_id,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.horizon = horizon
        self.session = session or SessionContext()
        self._new_id = id_factory
        self.clock = clock

    def horizon_end(self, now: datetime) -> datetime:
        return now + self.horizon

    def group_entries(self, group_id: str) -> list[Entry]:
        return self.store.query(lambda e: e.recurrence_group_id == group_id)

    def find_template(self, group_id: str) -> Entry | None:
        return next((t for t in self.store.list_templates() if t.recurrence_group_id == group_id), None)

    def save_template(self, template: Entry, now: datetime) -> Entry:
        """
        Validate and store a template, then regenerate its group.

        A new template gets a fresh recurrence group. If regeneration fails
        the template is still saved and the next pass fills the group in.

        Raises:
            InvalidRuleError: the rule is malformed; nothing is saved.
        """
        template = replace(template, is_recurrence_template=True)
        validate_template(template)

        if template.recurrence_group_id is None:
            template = replace(template, recurrence_group_id=self._new_id())
        template = replace(self.session.stamp(template), updated_at=now)
        self.store.upsert(template)

        try:
            result = self.reconcile_group(template, now)
        except StorageFailure as e:
            logger.warning(f"Saved template {template.id}, instances not regenerated yet: {e}")
        else:
            logger.info(f"Saved template '{template.title}' ({template.recurrence_group_id}): {result.summary()}")
        return template

    def reconcile_group(self, template: Entry, now: datetime) -> RecurrencePlan:
        """
        Plan and apply one group atomically.

        Raises:
            InvalidRuleError: the template's rule can't be expanded.
            StorageFailure: the group couldn't be committed; the store is unchanged.
        """
        group_id = template.recurrence_group_id
        with self.store.transaction():
            existing = self.group_entries(group_id) if group_id else []
            result = plan(template, existing, self.horizon_end(now), now)
            for entry_id in result.to_delete:
                self.store.delete(entry_id)
            for entry in result.to_update:
                entry.updated_at = now
                self.store.upsert(entry)
            for draft in result.to_create:
                self.store.upsert(draft.to_entry(self._new_id(), now))
        return result

    def reconcile_all(self, templates: list[Entry] | None = None, now: datetime | None = None) -> list[str]:
        """
        Reconcile every template. Returns the group ids that were applied.

        Groups whose rule is invalid or whose commit fails are skipped.
        """
        now = now or self.clock()
        if templates is None:
            try:
                templates = self.store.list_templates()
            except StorageFailure as e:
                logger.error(f"Failed to list templates: {e}")
                return []

        applied = []
        for template in templates:
            if not self.session.owns(template):
                continue
            group_id = template.recurrence_group_id
            try:
                result = self.reconcile_group(template, now)
            except InvalidRuleError as e:
                logger.warning(f"Skipping group {group_id} ('{template.title}'): {e}")
                continue
            except StorageFailure as e:
                logger.warning(f"Storage failure in group {group_id}, left unchanged: {e}")
                continue

            if not result.is_empty:
                logger.info(f"Reconciled '{template.title}' ({group_id}): {result.summary()}")
            applied.append(group_id)

        return applied

    def suppress_instance(self, entry_id: str) -> Entry | None:
        """
        Delete an instance so regeneration never brings it back.

        Its occurrence date is added to the template's exclusions in the same
        transaction. Returns the deleted entry, or None if it didn't exist.
        """
        with self.store.transaction():
            entry = self.store.get(entry_id)
            if entry is None:
                return None
            if entry.is_instance:
                template = self.find_template(entry.recurrence_group_id)
                if template is not None and entry.slot not in template.excluded_dates:
                    template.excluded_dates = sorted([*template.excluded_dates, entry.slot])
                    self.store.upsert(template)
            self.store.delete(entry_id)
        logger.info(f"Deleted entry {entry_id} ('{entry.title}' on {entry.date})")
        return entry

    def delete_series(self, group_id: str, now: datetime) -> list[str]:
        """
        Remove a group's template and every instance that hasn't elapsed.

        Elapsed instances stay as history. Returns deleted ids.
        """
        with self.store.transaction():
            doomed = [
                e.id
                for e in self.group_entries(group_id)
                if e.is_recurrence_template or not e.is_elapsed(now)
            ]
            for entry_id in doomed:
                self.store.delete(entry_id)
        logger.info(f"Deleted series {group_id}: {len(doomed)} entries")
        return doomed
