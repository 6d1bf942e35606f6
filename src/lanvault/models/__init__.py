"""LanVault domain models.

Pydantic models for entries, sync messages and configuration, plus the
exception taxonomy shared by every layer.
"""

from .config_models import AppConfig
from .entry import (
    CorruptedEntry,
    Entry,
    EntryCreate,
    EntryUpdate,
    ImportFailure,
    ImportResult,
    SyncEntry,
    VaultMeta,
)
from .sync import PairingInfo, SyncEvent, SyncMessage, SyncResponse, SyncStatus

__all__ = [
    "AppConfig",
    "CorruptedEntry",
    "Entry",
    "EntryCreate",
    "EntryUpdate",
    "ImportFailure",
    "ImportResult",
    "PairingInfo",
    "SyncEntry",
    "SyncEvent",
    "SyncMessage",
    "SyncResponse",
    "SyncStatus",
    "VaultMeta",
]
