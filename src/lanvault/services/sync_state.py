"""Per-peer sync bookkeeping.

Remembers when each peer was last synced and what the merge did, so
``lanvault sync status`` can report it. State lives in ``sync_state.json``
in the config directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from lanvault.adapters.sqlite.utils import now_ms
from lanvault.models.entry import ImportResult

logger = logging.getLogger(__name__)


class PeerSyncRecord(BaseModel):
    """Outcome of the last successful sync with one peer."""

    peer_id: str
    peer_name: str | None = None
    address: str | None = None
    last_sync: int
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


class _StateFile(BaseModel):
    peers: dict[str, PeerSyncRecord] = Field(default_factory=dict)


class SyncState:
    """Manages sync state persistence."""

    def __init__(self, state_file: Path):
        self.state_file = Path(state_file)
        self._state = self._load()

    def _load(self) -> _StateFile:
        if not self.state_file.exists():
            return _StateFile()
        try:
            return _StateFile.model_validate_json(self.state_file.read_text(encoding="utf-8"))
        except (ValidationError, OSError) as e:
            # Bookkeeping only; an unreadable file starts fresh
            logger.warning("ignoring unreadable sync state %s: %s", self.state_file, e)
            return _StateFile()

    def _save(self) -> None:
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        self.state_file.write_text(self._state.model_dump_json(indent=2), encoding="utf-8")
        self.state_file.chmod(0o600)

    def get_last_sync(self, peer_id: str) -> int | None:
        """Last sync time with a peer in epoch ms, or None if never synced."""
        record = self._state.peers.get(peer_id)
        return record.last_sync if record else None

    def get_peer(self, peer_id: str) -> PeerSyncRecord | None:
        return self._state.peers.get(peer_id)

    def record_sync(
        self,
        peer_id: str,
        result: ImportResult,
        peer_name: str | None = None,
        address: str | None = None,
        timestamp: int | None = None,
    ) -> PeerSyncRecord:
        """Store the outcome of a completed sync."""
        record = PeerSyncRecord(
            peer_id=peer_id,
            peer_name=peer_name,
            address=address,
            last_sync=timestamp if timestamp is not None else now_ms(),
            imported=result.imported,
            updated=result.updated,
            skipped=result.skipped,
            failed=len(result.failures),
        )
        self._state.peers[peer_id] = record
        self._save()
        return record

    def clear(self, peer_id: str) -> None:
        if self._state.peers.pop(peer_id, None) is not None:
            self._save()

    def all_peers(self) -> list[PeerSyncRecord]:
        """Every known peer, most recently synced first."""
        return sorted(self._state.peers.values(), key=lambda r: r.last_sync, reverse=True)
