"""Length-prefixed JSON framing over asyncio streams.

A frame is a 4-byte big-endian length followed by that many bytes of UTF-8
JSON. Frames above :data:`MAX_FRAME_SIZE` are rejected without reading the
body, which leaves the stream unusable, so the channel is closed.
"""

from __future__ import annotations

import asyncio
import logging
import struct

from pydantic import ValidationError

from lanvault.models.exceptions import FrameTooLarge, MalformedMessage, TransportUnavailable
from lanvault.models.sync import SyncMessage

MAX_FRAME_SIZE = 16 * 1024 * 1024
HEADER = struct.Struct(">I")

logger = logging.getLogger(__name__)


def encode_frame(message: SyncMessage) -> bytes:
    """Serialize a message into one frame.

    Raises:
        FrameTooLarge: If the encoded message exceeds the frame limit
    """
    body = message.to_bytes()
    if len(body) > MAX_FRAME_SIZE:
        raise FrameTooLarge(f"Message of {len(body)} bytes exceeds frame limit")
    return HEADER.pack(len(body)) + body


def decode_body(body: bytes) -> SyncMessage:
    """Parse a frame body.

    Raises:
        MalformedMessage: If the body is not a protocol message
    """
    try:
        return SyncMessage.model_validate_json(body)
    except ValidationError as e:
        raise MalformedMessage(f"Invalid message: {e.error_count()} error(s)") from e


async def read_frame(reader: asyncio.StreamReader) -> SyncMessage:
    """Read one message from the stream.

    Raises:
        TransportUnavailable: If the stream ended
        FrameTooLarge: If the announced length exceeds the limit
        MalformedMessage: If the frame body is not a protocol message
    """
    try:
        header = await reader.readexactly(HEADER.size)
        (length,) = HEADER.unpack(header)
        if length > MAX_FRAME_SIZE:
            raise FrameTooLarge(f"Peer announced a frame of {length} bytes")
        body = await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise TransportUnavailable("Connection closed by peer") from e
    except (ConnectionError, OSError) as e:
        raise TransportUnavailable(f"Connection lost: {e}") from e
    return decode_body(body)


class PeerChannel:
    """One framed connection to a peer.

    Sends are serialized so frames from concurrent senders never interleave.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self._send_lock = asyncio.Lock()
        self._closed = False

    @property
    def peer_address(self) -> str:
        peer = self.writer.get_extra_info("peername")
        if not peer:
            return "unknown"
        return f"{peer[0]}:{peer[1]}"

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def send(self, message: SyncMessage) -> None:
        """Write one message.

        Raises:
            TransportUnavailable: If the channel is closed or the write failed
        """
        if self._closed:
            raise TransportUnavailable("Channel is closed")
        frame = encode_frame(message)
        async with self._send_lock:
            try:
                self.writer.write(frame)
                await self.writer.drain()
            except (ConnectionError, OSError) as e:
                raise TransportUnavailable(f"Send failed: {e}") from e
        logger.debug("sent %s to %s", message.type, self.peer_address)

    async def receive(self) -> SyncMessage:
        """Read the next message. See :func:`read_frame`."""
        return await read_frame(self.reader)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug("error while closing channel: %s", e)


async def open_channel(host: str, port: int, timeout: float) -> PeerChannel:
    """Connect to a peer.

    Raises:
        TransportUnavailable: If the connection could not be made within ``timeout``
    """
    try:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except asyncio.TimeoutError as e:
        raise TransportUnavailable(f"Timed out connecting to {host}:{port}") from e
    except OSError as e:
        raise TransportUnavailable(f"Cannot connect to {host}:{port}: {e}") from e
    return PeerChannel(reader, writer)
