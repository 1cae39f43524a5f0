"""Ports - interfaces/protocols for external dependencies."""

from .entry_store import EntryStore, StorageFailure
from .notifier import NotificationCapability, SchedulingFailure

__all__ = [
    "EntryStore",
    "StorageFailure",
    "NotificationCapability",
    "SchedulingFailure",
]
