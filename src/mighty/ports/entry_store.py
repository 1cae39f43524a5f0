"""Entry store interface."""

from contextlib import AbstractContextManager
from typing import Callable, Protocol

from mighty.core.entries import Entry, Section


class StorageFailure(Exception):
    """Raised when the store can't read or commit a change."""

    pass


class EntryStore(Protocol):
    """Interface for durable entry storage, any backend."""

    def query(self, predicate: Callable[[Entry], bool]) -> list[Entry]:
        """Entries matching a predicate."""
        ...

    def get(self, entry_id: str) -> Entry | None:
        """Entry by id. Returns None if not found."""
        ...

    def upsert(self, entry: Entry) -> None:
        """Insert or replace an entry."""
        ...

    def delete(self, entry_id: str) -> None:
        """Delete an entry. Deleting a missing id is a no-op."""
        ...

    def list_templates(self) -> list[Entry]:
        """All recurrence templates."""
        ...

    def list_sections(self) -> list[Section]:
        """All sections."""
        ...

    def get_section(self, section_id: str) -> Section | None:
        """Section by id. Returns None if not found."""
        ...

    def upsert_section(self, section: Section) -> None:
        """Insert or replace a section."""
        ...

    def transaction(self) -> AbstractContextManager[None]:
        """
        Group writes into one commit.

        Everything written inside the block commits together; if the block
        raises, the store is left as it was before the block.
        """
        ...
