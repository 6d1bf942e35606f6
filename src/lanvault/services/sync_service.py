"""Sync engine: the connecting side of a LAN sync session.

The engine connects to a paired peer, waits for its ``welcome``, and then
issues ``sync-request`` messages whose responses are matched back to the
caller by ``requestId``. It also answers the peer's own sync requests from a
bound entry source, exactly like :class:`~lanvault.services.sync_server.SyncServer`.

State changes and peer activity are published as :class:`SyncEvent` objects
on :attr:`SyncEngine.events`; the owner consumes that queue.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from typing import Any, Protocol

from pydantic import ValidationError

from lanvault.models.entry import SyncEntry
from lanvault.models.exceptions import (
    MalformedMessage,
    PeerError,
    RequestTimedOut,
    TransportUnavailable,
    VaultLocked,
)
from lanvault.models.sync import (
    MessageType,
    PairingInfo,
    SyncEvent,
    SyncMessage,
    SyncResponse,
    SyncStatus,
    parse_pairing_payload,
)
from lanvault.services.transport import PeerChannel, open_channel

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_REQUEST_TIMEOUT = 10.0

logger = logging.getLogger(__name__)


class EntrySource(Protocol):
    """Whatever can hand the responder the local entry list."""

    def export_entries(self) -> list[SyncEntry]:
        """Raises VaultLocked if the vault is not unlocked."""


async def build_sync_response(
    source: EntrySource | None, request_id: str | None
) -> SyncMessage:
    """Answer a sync request from ``source``.

    A missing source or a locked vault yields an empty list flagged
    ``vaultLocked``; any other failure yields an empty list. The request is
    always answered.
    """
    entries: list[Any] = []
    locked = False
    if source is None:
        locked = True
    else:
        try:
            entries = await asyncio.to_thread(source.export_entries)
        except VaultLocked:
            locked = True
        except Exception as e:  # the peer must get an answer regardless
            logger.error("entry source failed while answering sync: %s", e)

    wire = [e.to_wire() if isinstance(e, SyncEntry) else e for e in entries]
    return SyncMessage(
        type=MessageType.SYNC_RESPONSE.value,
        request_id=request_id,
        payload={"entries": wire, "totalCount": len(wire), "vaultLocked": locked},
    )


def parse_sync_response(message: SyncMessage) -> SyncResponse:
    """Turn a ``sync-response`` payload into a :class:`SyncResponse`.

    Entries that fail validation are kept as raw dicts so the import step can
    record them as failures.
    """
    entries: list[Any] = []
    for raw in message.payload.get("entries") or []:
        try:
            entries.append(SyncEntry.model_validate(raw))
        except ValidationError:
            entry_id = raw.get("id") if isinstance(raw, dict) else None
            logger.warning("peer sent an invalid entry: %r", entry_id)
            entries.append(raw)
    return SyncResponse(
        entries=entries,
        total_count=message.payload.get("totalCount", len(entries)),
        peer_locked=bool(message.payload.get("vaultLocked", False)),
    )


class SyncEngine:
    """Connecting side of a sync session.

    Args:
        device_id: This device's id, sent to nobody but logged by peers
        device_name: Human-readable name of this device
        connect_timeout: Bound on connecting plus receiving ``welcome``
        request_timeout: Default bound on each sync request
        entry_source: Source used to answer the peer's sync requests
    """

    def __init__(
        self,
        device_id: str,
        device_name: str,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        entry_source: EntrySource | None = None,
    ):
        self.device_id = device_id
        self.device_name = device_name
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self.events: asyncio.Queue[SyncEvent] = asyncio.Queue()
        self.status = SyncStatus.DISCONNECTED
        self.peer_id: str | None = None
        self.peer_name: str | None = None
        self.peer: PairingInfo | None = None
        self._entry_source = entry_source
        self._channel: PeerChannel | None = None
        self._reader_task: asyncio.Task | None = None
        self._pending: OrderedDict[str, tuple[str, asyncio.Future]] = OrderedDict()
        # Timed-out request ids whose late responses must still be swallowed
        self._abandoned: OrderedDict[str, str] = OrderedDict()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def bind_entry_source(self, source: EntrySource | None) -> None:
        """Set (or clear) the source used to answer the peer's sync requests."""
        self._entry_source = source

    @property
    def is_connected(self) -> bool:
        return self.status in (SyncStatus.CONNECTED, SyncStatus.SYNCING)

    def _emit(self, kind: str, **data: Any) -> None:
        self.events.put_nowait(SyncEvent(kind, data))

    def _set_status(self, status: SyncStatus) -> None:
        if status == self.status:
            return
        logger.debug("status %s -> %s", self.status.value, status.value)
        self.status = status
        self._emit("status-changed", status=status.value)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self, pairing: PairingInfo | str) -> None:
        """Connect to a peer and complete the ``welcome`` handshake.

        Raises:
            ValueError: If a pairing string cannot be parsed
            TransportUnavailable: If the peer is unreachable or sent no welcome
        """
        if isinstance(pairing, str):
            pairing = parse_pairing_payload(pairing)
        if self._channel is not None:
            await self.disconnect()

        self.peer = pairing
        self._set_status(SyncStatus.CONNECTING)
        channel: PeerChannel | None = None
        try:
            async with asyncio.timeout(self.connect_timeout):
                channel = await open_channel(pairing.ip, pairing.port, self.connect_timeout)
                welcome = await self._await_welcome(channel)
        except TimeoutError as e:
            await self._abort_connect(channel, "No welcome from peer")
            raise TransportUnavailable(
                f"Peer {pairing.ip}:{pairing.port} did not complete the handshake"
            ) from e
        except TransportUnavailable as e:
            await self._abort_connect(channel, str(e))
            raise

        self._channel = channel
        self.peer_id = welcome.payload.get("deviceId") or pairing.device_id
        self.peer_name = welcome.payload.get("deviceName") or pairing.name
        logger.info("connected to %s (%s)", self.peer_name, channel.peer_address)
        self._emit("welcome", device_id=self.peer_id, device_name=self.peer_name)
        self._set_status(SyncStatus.CONNECTED)
        self._reader_task = asyncio.create_task(self._read_loop(channel))

    async def _await_welcome(self, channel: PeerChannel) -> SyncMessage:
        while True:
            try:
                message = await channel.receive()
            except MalformedMessage as e:
                logger.warning("ignoring malformed frame before welcome: %s", e)
                continue
            if message.type == MessageType.WELCOME.value:
                return message
            logger.debug("ignoring %s before welcome", message.type)

    async def _abort_connect(self, channel: PeerChannel | None, reason: str) -> None:
        if channel is not None:
            await channel.close()
        logger.warning("connect failed: %s", reason)
        self._set_status(SyncStatus.ERROR)
        self._emit("error", message=reason)
        self._set_status(SyncStatus.DISCONNECTED)

    async def disconnect(self) -> None:
        """Close the channel and fail any outstanding requests."""
        task, self._reader_task = self._reader_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._teardown(TransportUnavailable("Disconnected"))

    async def _teardown(self, error: Exception) -> None:
        channel, self._channel = self._channel, None
        if channel is not None:
            await channel.close()
        self._reject_all(error)
        if self.status != SyncStatus.DISCONNECTED:
            self._set_status(SyncStatus.DISCONNECTED)
            self._emit("disconnected", peer_id=self.peer_id)

    async def __aenter__(self) -> SyncEngine:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request_sync(self, timeout: float | None = None) -> SyncResponse:
        """Ask the peer for its entries.

        Raises:
            TransportUnavailable: If not connected or the send failed
            PeerError: If the peer answered with an error
            RequestTimedOut: If no response arrived within ``timeout``
        """
        if not self.is_connected:
            raise TransportUnavailable("Not connected to a peer")
        self._set_status(SyncStatus.SYNCING)
        try:
            message = await self._request(MessageType.SYNC_REQUEST, MessageType.SYNC_RESPONSE, timeout)
        finally:
            if self.status == SyncStatus.SYNCING:
                self._set_status(SyncStatus.CONNECTED)
        response = parse_sync_response(message)
        logger.info(
            "received %d entries from %s%s",
            len(response.entries),
            self.peer_name,
            " (peer vault locked)" if response.peer_locked else "",
        )
        return response

    async def ping(self, timeout: float | None = None) -> float:
        """Round-trip a ping. Returns the latency in seconds."""
        loop = asyncio.get_running_loop()
        start = loop.time()
        await self._request(MessageType.PING, MessageType.PONG, timeout)
        return loop.time() - start

    async def _request(
        self, request_type: MessageType, response_type: MessageType, timeout: float | None
    ) -> SyncMessage:
        channel = self._channel
        if channel is None or not self.is_connected:
            raise TransportUnavailable("Not connected to a peer")

        request_id = str(uuid.uuid4())
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (response_type.value, future)
        try:
            try:
                await channel.send(SyncMessage(type=request_type.value, request_id=request_id))
            except TransportUnavailable as e:
                self._pending.pop(request_id, None)
                await self._connection_lost(e)
                raise
            return await asyncio.wait_for(future, timeout or self.request_timeout)
        except asyncio.TimeoutError as e:
            logger.warning("%s %s timed out", request_type.value, request_id)
            self._abandoned[request_id] = response_type.value
            raise RequestTimedOut(
                f"No {response_type.value} within {timeout or self.request_timeout}s"
            ) from e
        finally:
            self._pending.pop(request_id, None)

    def _take_pending(self, response_type: str, request_id: str | None) -> asyncio.Future | None:
        if request_id is not None:
            entry = self._pending.get(request_id)
            if entry is None:
                self._abandoned.pop(request_id, None)
                return None
            self._pending.pop(request_id)
            return entry[1]
        # No id: a late answer to a timed-out request comes first
        for key, expected in self._abandoned.items():
            if expected == response_type:
                self._abandoned.pop(key)
                return None
        # Otherwise the oldest request waiting for this kind of response
        for key, (expected, future) in self._pending.items():
            if expected == response_type:
                self._pending.pop(key)
                return future
        return None

    def _reject_all(self, error: Exception) -> None:
        pending, self._pending = self._pending, OrderedDict()
        self._abandoned.clear()
        for _, future in pending.values():
            if not future.done():
                future.set_exception(error)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _read_loop(self, channel: PeerChannel) -> None:
        try:
            while True:
                try:
                    message = await channel.receive()
                except MalformedMessage as e:
                    logger.warning("dropping malformed frame: %s", e)
                    continue
                await self._dispatch(channel, message)
        except TransportUnavailable as e:
            await self._connection_lost(e)

    async def _connection_lost(self, error: TransportUnavailable) -> None:
        """Report ``error`` and tear the session down, stopping the reader."""
        logger.warning("connection to %s lost: %s", self.peer_name, error)
        self._set_status(SyncStatus.ERROR)
        self._emit("error", message=str(error))
        task, self._reader_task = self._reader_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._teardown(error)

    async def _dispatch(self, channel: PeerChannel, message: SyncMessage) -> None:
        kind = message.type
        if kind in (MessageType.SYNC_RESPONSE.value, MessageType.PONG.value):
            future = self._take_pending(kind, message.request_id)
            if future is None or future.done():
                logger.info("dropping stale %s %s", kind, message.request_id)
                return
            future.set_result(message)
        elif kind == MessageType.ERROR.value:
            reason = message.payload.get("message", "unknown error")
            future = self._take_pending(MessageType.SYNC_RESPONSE.value, message.request_id)
            if future is not None and not future.done():
                future.set_exception(PeerError(f"Peer error: {reason}"))
            else:
                logger.warning("peer error: %s", reason)
                self._emit("error", message=reason)
        elif kind == MessageType.SYNC_REQUEST.value:
            self._emit("sync-request-received", peer_id=self.peer_id)
            await channel.send(await build_sync_response(self._entry_source, message.request_id))
        elif kind == MessageType.PING.value:
            await channel.send(SyncMessage(type=MessageType.PONG.value, request_id=message.request_id))
        else:
            logger.debug("ignoring %s", kind)
