"""Sync protocol models.

Every frame on the wire carries one JSON object::

    {"type": "...", "payload": {...}, "timestamp": 1700000000000, "requestId": "..."}
"""

from __future__ import annotations

import ipaddress
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from lanvault.models.entry import SyncEntry


class MessageType(str, Enum):
    """Message types on the sync channel."""

    WELCOME = "welcome"
    SYNC_REQUEST = "sync-request"
    SYNC_RESPONSE = "sync-response"
    ERROR = "error"
    PING = "ping"
    PONG = "pong"


class SyncStatus(str, Enum):
    """Connection state of the sync engine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    SYNCING = "syncing"
    ERROR = "error"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class SyncMessage(BaseModel):
    """One protocol frame."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=_now_ms)
    request_id: str | None = None

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


class PairingInfo(BaseModel):
    """Where to reach a peer, as scanned from a pairing code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ip: str
    port: int
    device_id: str | None = None
    name: str | None = None


def parse_pairing_payload(text: str) -> PairingInfo:
    """Parse a pairing payload.

    Accepts either a JSON object ``{"ip", "port", "deviceId"?, "name"?}`` or a
    literal ``"ip:port"``.

    Raises:
        ValueError: If the text is neither form
    """
    text = text.strip()
    if text.startswith("{"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid pairing JSON: {e}") from e
        if not isinstance(data, dict) or "ip" not in data or "port" not in data:
            raise ValueError("Pairing JSON must contain 'ip' and 'port'")
        info = PairingInfo.model_validate(data)
    else:
        host, sep, port = text.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"Unrecognized pairing payload: {text!r}")
        info = PairingInfo(ip=host.strip("[]"), port=int(port))

    try:
        ipaddress.ip_address(info.ip)
    except ValueError as e:
        raise ValueError(f"Invalid peer address: {info.ip!r}") from e
    if not 0 < info.port <= 65535:
        raise ValueError(f"Invalid peer port: {info.port}")
    return info


@dataclass(frozen=True)
class SyncEvent:
    """Notification published on the engine's event queue.

    Kinds: ``status-changed``, ``welcome``, ``disconnected``, ``error``,
    ``sync-request-received``.
    """

    kind: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SyncResponse:
    """Entries returned by a peer for one sync request."""

    entries: list[SyncEntry | dict[str, Any]]
    total_count: int
    peer_locked: bool = False
