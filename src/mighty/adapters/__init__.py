"""Adapters - I/O implementations of ports."""

from .memory_store import InMemoryEntryStore
from .file_store import FileEntryStore
from .telegram_notifier import TelegramNotifier

__all__ = [
    "InMemoryEntryStore",
    "FileEntryStore",
    "TelegramNotifier",
]
