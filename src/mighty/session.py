"""Session context - the identity whose entries are being managed."""

from dataclasses import dataclass, replace

from .core.entries import Entry, Section


@dataclass(frozen=True)
class SessionContext:
    """
    Current owning identity, passed explicitly to whoever needs it.

    owner_id=None is a local-only session that sees every record.
    """

    owner_id: str | None = None

    def owns(self, record: Entry | Section) -> bool:
        if self.owner_id is None:
            return True
        # Records without an owner predate accounts and stay visible
        return record.owner_id in (self.owner_id, None)

    def stamp(self, entry: Entry) -> Entry:
        """Entry tagged with this session's owner, if it has none yet."""
        if entry.owner_id is not None or self.owner_id is None:
            return entry
        return replace(entry, owner_id=self.owner_id)
