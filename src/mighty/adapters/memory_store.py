"""In-memory entry store adapter."""

import copy
import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from mighty.core.entries import Entry, Section

logger = logging.getLogger(__name__)


class InMemoryEntryStore:
    """
    Dict-backed entry storage.

    Implements EntryStore protocol. Records are copied on the way in and out
    so callers only ever work on snapshots. Subclasses persist by overriding
    _commit() and pick up changes made by other processes in _refresh().
    """

    def __init__(self, entries: list[Entry] | None = None, sections: list[Section] | None = None):
        self._entries: dict[str, Entry] = {e.id: copy.deepcopy(e) for e in entries or []}
        self._sections: dict[str, Section] = {s.id: copy.deepcopy(s) for s in sections or []}
        self._depth = 0
        self._dirty = False

    def _commit(self) -> None:
        """Persist current state. No-op in memory."""

    def _refresh(self) -> None:
        """Pick up changes made by other writers. No-op in memory."""

    def _read(self) -> None:
        # Inside a transaction the snapshot taken at its start is authoritative
        if not self._depth:
            self._refresh()

    def query(self, predicate: Callable[[Entry], bool]) -> list[Entry]:
        """Entries matching a predicate, ordered by date."""
        self._read()
        matches = [e for e in self._entries.values() if predicate(e)]
        return [copy.deepcopy(e) for e in sorted(matches, key=lambda e: (e.date, e.id))]

    def get(self, entry_id: str) -> Entry | None:
        self._read()
        entry = self._entries.get(entry_id)
        return copy.deepcopy(entry) if entry else None

    def all(self) -> list[Entry]:
        return self.query(lambda e: True)

    def upsert(self, entry: Entry) -> None:
        with self.transaction():
            self._entries[entry.id] = copy.deepcopy(entry)
            self._dirty = True

    def delete(self, entry_id: str) -> None:
        with self.transaction():
            if self._entries.pop(entry_id, None) is not None:
                self._dirty = True

    def list_templates(self) -> list[Entry]:
        return self.query(lambda e: e.is_recurrence_template)

    def list_sections(self) -> list[Section]:
        self._read()
        return [copy.deepcopy(s) for s in sorted(self._sections.values(), key=lambda s: s.name)]

    def get_section(self, section_id: str) -> Section | None:
        self._read()
        section = self._sections.get(section_id)
        return copy.deepcopy(section) if section else None

    def upsert_section(self, section: Section) -> None:
        with self.transaction():
            self._sections[section.id] = copy.deepcopy(section)
            self._dirty = True

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Commit all writes in the block together, or roll them all back.

        A block that wrote nothing commits nothing.
        """
        if self._depth:
            # Nested blocks join the outer transaction
            yield
            return

        self._refresh()
        entries = copy.deepcopy(self._entries)
        sections = copy.deepcopy(self._sections)
        self._depth = 1
        try:
            yield
            if self._dirty:
                self._commit()
        except BaseException:
            self._entries = entries
            self._sections = sections
            logger.debug("Rolled back store transaction")
            raise
        finally:
            self._depth = 0
            self._dirty = False
