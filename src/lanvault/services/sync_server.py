"""Sync server: the listening side of a LAN sync session.

Each accepted connection is greeted with ``welcome`` and then served until
the peer disconnects. Sync requests are answered from the bound entry source,
which may be swapped (or cleared on lock) while the server runs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from lanvault.models.config_models import DEFAULT_SYNC_PORT
from lanvault.models.exceptions import MalformedMessage, TransportUnavailable
from lanvault.models.sync import MessageType, SyncEvent, SyncMessage
from lanvault.services.sync_service import EntrySource, build_sync_response
from lanvault.services.transport import PeerChannel

logger = logging.getLogger(__name__)


class SyncServer:
    """TCP listener answering sync requests.

    Args:
        device_id: Sent to peers in ``welcome``
        device_name: Sent to peers in ``welcome``
        host: Interface to bind
        port: Port to bind, 0 for an ephemeral port
        entry_source: Source of entries for ``sync-response``
    """

    def __init__(
        self,
        device_id: str,
        device_name: str,
        host: str = "0.0.0.0",
        port: int = DEFAULT_SYNC_PORT,
        entry_source: EntrySource | None = None,
    ):
        self.device_id = device_id
        self.device_name = device_name
        self.host = host
        self.port = port
        self.events: asyncio.Queue[SyncEvent] = asyncio.Queue()
        self._entry_source = entry_source
        self._server: asyncio.Server | None = None
        self._channels: set[PeerChannel] = set()

    def bind_entry_source(self, source: EntrySource | None) -> None:
        """Set (or clear) the source used to answer sync requests."""
        self._entry_source = source

    @property
    def bound_port(self) -> int:
        """Port actually bound, useful when started on port 0."""
        if self._server is None or not self._server.sockets:
            return self.port
        return self._server.sockets[0].getsockname()[1]

    @property
    def client_count(self) -> int:
        return len(self._channels)

    def _emit(self, kind: str, **data: Any) -> None:
        self.events.put_nowait(SyncEvent(kind, data))

    async def start(self) -> None:
        """Bind and start accepting connections.

        Raises:
            TransportUnavailable: If the address cannot be bound
        """
        try:
            self._server = await asyncio.start_server(self._handle_client, self.host, self.port)
        except OSError as e:
            raise TransportUnavailable(f"Cannot listen on {self.host}:{self.port}: {e}") from e
        logger.info("sync server listening on %s:%d", self.host, self.bound_port)
        self._emit("status-changed", status="listening", port=self.bound_port)

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        await self._server.serve_forever()

    async def stop(self) -> None:
        """Stop listening and close every client connection."""
        server, self._server = self._server, None
        if server is not None:
            server.close()
        for channel in list(self._channels):
            await channel.close()
        if server is not None:
            await server.wait_closed()
        logger.info("sync server stopped")

    async def __aenter__(self) -> SyncServer:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        channel = PeerChannel(reader, writer)
        address = channel.peer_address
        self._channels.add(channel)
        logger.info("peer connected from %s", address)
        self._emit("status-changed", status="connected", address=address)
        try:
            await channel.send(
                SyncMessage(
                    type=MessageType.WELCOME.value,
                    payload={"deviceId": self.device_id, "deviceName": self.device_name},
                )
            )
            while True:
                try:
                    message = await channel.receive()
                except MalformedMessage as e:
                    logger.warning("dropping malformed frame from %s: %s", address, e)
                    continue
                await self._dispatch(channel, message, address)
        except TransportUnavailable as e:
            logger.info("peer %s disconnected: %s", address, e)
        finally:
            self._channels.discard(channel)
            await channel.close()
            self._emit("disconnected", address=address)

    async def _dispatch(self, channel: PeerChannel, message: SyncMessage, address: str) -> None:
        if message.type == MessageType.SYNC_REQUEST.value:
            self._emit("sync-request-received", address=address)
            response = await build_sync_response(self._entry_source, message.request_id)
            await channel.send(response)
            logger.info(
                "answered sync request from %s with %d entries",
                address,
                response.payload["totalCount"],
            )
        elif message.type == MessageType.PING.value:
            await channel.send(
                SyncMessage(type=MessageType.PONG.value, request_id=message.request_id)
            )
        else:
            logger.debug("ignoring %s from %s", message.type, address)
