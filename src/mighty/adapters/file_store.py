"""File-based entry store adapter."""

import json
import logging
import os
import tempfile
from pathlib import Path

from mighty.core.entries import Entry, Section
from mighty.ports.entry_store import StorageFailure

from .memory_store import InMemoryEntryStore

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class FileEntryStore(InMemoryEntryStore):
    """
    JSON file entry storage.

    Implements EntryStore protocol. The whole store lives in one file,
    rewritten atomically when a transaction writes something. The file is
    shared between processes (the CLI edits it while the bot runs), so it is
    re-read whenever it changed on disk since this store last saw it.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()
        self._seen: tuple[int, int, int] | None = None
        super().__init__()
        self._refresh()

    def _signature(self) -> tuple[int, int, int] | None:
        """Identity of the file on disk, or None if it doesn't exist."""
        try:
            st = self.path.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageFailure(f"Failed to stat {self.path}: {e}") from e
        return st.st_mtime_ns, st.st_size, st.st_ino

    def _refresh(self) -> None:
        signature = self._signature()
        if signature == self._seen:
            return
        entries, sections = self._load()
        self._entries = {e.id: e for e in entries}
        self._sections = {s.id: s for s in sections}
        self._seen = signature
        logger.debug(f"Loaded {len(entries)} entries from {self.path}")

    def _load(self) -> tuple[list[Entry], list[Section]]:
        """Read the store file. A missing file is an empty store."""
        if not self.path.exists():
            return [], []
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StorageFailure(f"Failed to read {self.path}: {e}") from e

        entries = []
        for item in data.get("entries", []):
            try:
                entries.append(Entry.from_dict(item))
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping unreadable entry {item.get('id', '?')}: {e}")
        sections = [Section.from_dict(s) for s in data.get("sections", [])]
        return entries, sections

    def _commit(self) -> None:
        """Write the store to a temp file, then swap it into place."""
        payload = {
            "version": FORMAT_VERSION,
            "entries": [e.to_dict() for e in self._entries.values()],
            "sections": [s.to_dict() for s in self._sections.values()],
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(payload, f, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageFailure(f"Failed to write {self.path}: {e}") from e
        self._seen = self._signature()
