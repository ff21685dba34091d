"""
Backup and restore for append-only log databases via a remote
content-addressed store.
"""

from logbridge.bridge import (
    LogBridge,
    backup_database,
    clear_space,
    restore_database,
    restore_from_space,
)
from logbridge.memory import MemoryLogEngine
from logbridge.remote import RemoteStore

__all__ = [
    "LogBridge",
    "MemoryLogEngine",
    "RemoteStore",
    "backup_database",
    "clear_space",
    "restore_database",
    "restore_from_space",
]
