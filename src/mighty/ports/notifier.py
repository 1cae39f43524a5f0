"""Notification capability interface."""

from datetime import datetime
from typing import Protocol


class SchedulingFailure(Exception):
    """Raised when the platform refuses to schedule or cancel a reminder."""

    pass


class NotificationCapability(Protocol):
    """Interface for the platform's local reminder delivery."""

    async def request_permission(self) -> bool:
        """Ask for permission to deliver reminders. Returns True if granted."""
        ...

    async def schedule(
        self,
        entry_id: str,
        fire_at: datetime,
        title: str,
        body: str,
        keys: tuple[str, ...] = (),
    ) -> None:
        """Schedule (or replace) the reminder for an entry. Raises SchedulingFailure."""
        ...

    async def cancel(self, entry_id: str) -> None:
        """Cancel the reminder for an entry. Cancelling a missing id is a no-op."""
        ...

    async def cancel_all(self, key: str) -> list[str]:
        """Cancel every reminder tagged with a section or group key. Returns cancelled ids."""
        ...

    async def pending(self) -> dict[str, datetime]:
        """Reminders the platform still holds, by entry id."""
        ...
