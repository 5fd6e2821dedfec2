"""Two-way handshake that opens a notification protocol substream.

When peer A dials peer B:

1. A sends its protocol-specific handshake, prefixed with its length as an
   unsigned LEB128 varint.
2. B reads the handshake of A.
3. B sends its own handshake back to A.
4. A reads the handshake of B.

Afterwards the substream carries varint-length-prefixed notifications in one
direction only: from the dialer's outbound side to the listener's inbound side.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum, auto

MAX_HANDSHAKE_SIZE = 1024
"""Maximum allowed size of a handshake message in bytes."""

_LOG = logging.getLogger("subp2p.upgrades")
_MAX_VARINT_BYTES = 10
_U64_MAX = (1 << 64) - 1


class HandshakeError(Exception):
    """Raised when a handshake or substream cannot be read or written."""


class HandshakeTooLarge(HandshakeError):
    """The remote announced a handshake larger than :data:`MAX_HANDSHAKE_SIZE`."""

    def __init__(self, requested: int, maximum: int = MAX_HANDSHAKE_SIZE) -> None:
        super().__init__(f"Initial message or handshake was too large: {requested}")
        self.requested = requested
        self.maximum = maximum


class VarintDecodeError(HandshakeError):
    """A variable-length integer on the wire is malformed."""


def encode_varint(value: int) -> bytes:
    """Encode a non-negative integer as an unsigned LEB128 varint."""
    if value < 0:
        raise ValueError("varint value must not be negative")
    if value > _U64_MAX:
        raise ValueError("varint value must fit in 64 bits")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


async def _read_varint(reader: asyncio.StreamReader, *, eof_ok: bool) -> int | None:
    value = 0
    for position in range(_MAX_VARINT_BYTES):
        chunk = await reader.read(1)
        if not chunk:
            if position == 0 and eof_ok:
                return None
            raise HandshakeError("Unexpected end of stream while reading a varint")
        byte = chunk[0]
        value |= (byte & 0x7F) << (7 * position)
        if not byte & 0x80:
            if byte == 0 and position > 0:
                raise VarintDecodeError("Varint is not minimally encoded")
            if value > _U64_MAX:
                raise VarintDecodeError("Varint overflows 64 bits")
            return value
    raise VarintDecodeError("Varint overflows 64 bits")


async def read_varint(reader: asyncio.StreamReader) -> int:
    """Read one unsigned LEB128 varint from ``reader``."""
    value = await _read_varint(reader, eof_ok=False)
    assert value is not None
    return value


async def _read_exact(reader: asyncio.StreamReader, length: int) -> bytes:
    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as err:
        raise HandshakeError(
            f"Unexpected end of stream: expected {length} bytes, got {len(err.partial)}"
        ) from err


async def _read_handshake(reader: asyncio.StreamReader, name: str) -> bytes:
    length = await read_varint(reader)
    _LOG.debug("handshake length=%d name=%s", length, name)
    if length > MAX_HANDSHAKE_SIZE:
        raise HandshakeTooLarge(length, MAX_HANDSHAKE_SIZE)
    if not length:
        return b""
    return await _read_exact(reader, length)


def _frame(data: bytes) -> bytes:
    data = bytes(data)
    return encode_varint(len(data)) + data


async def write_length_prefixed(writer: asyncio.StreamWriter, data: bytes) -> None:
    """Write ``data`` prefixed with its varint length and flush the writer."""
    writer.write(_frame(data))
    try:
        await writer.drain()
    except OSError as err:
        raise HandshakeError(f"Cannot write to the substream: {err}") from err


async def _close_write_side(writer: asyncio.StreamWriter) -> None:
    try:
        await writer.drain()
        if writer.can_write_eof():
            writer.write_eof()
        else:
            writer.close()
            await writer.wait_closed()
    except OSError as err:
        raise HandshakeError(f"Cannot close the substream: {err}") from err


class InboundState(Enum):
    """Progress of sending our handshake back on an inbound substream."""

    WAITING = auto()
    """Waiting for the higher level to provide the handshake."""
    SENDING = auto()
    """The handshake must be pushed to the socket."""
    FLUSH = auto()
    """The socket must be flushed."""
    DONE = auto()
    """The handshake was sent; notifications can be received."""
    NEEDS_CLOSE = auto()
    """The remote closed its writing side; ours must be closed in return."""
    FULLY_CLOSED = auto()
    """Both sides have closed their writing side."""


class HandshakeInboundSubstream:
    """Inbound substream that first sends back a handshake, then yields notifications."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        negotiated_name: str,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.negotiated_name = negotiated_name
        self._state = InboundState.WAITING
        self._handshake: bytes | None = None
        self._handshake_ready = asyncio.Event()

    @property
    def state(self) -> InboundState:
        """Current state of the substream."""
        return self._state

    def set_handshake(self, handshake: bytes) -> None:
        """Provide the handshake to send back; ignored once one was provided."""
        if self._state is not InboundState.WAITING:
            return
        self._handshake = bytes(handshake)
        self._state = InboundState.SENDING
        self._handshake_ready.set()

    async def _send_pending(self) -> None:
        if self._state is InboundState.SENDING:
            assert self._handshake is not None
            _LOG.debug("sending handshake name=%s", self.negotiated_name)
            self._state = InboundState.FLUSH
            self._writer.write(_frame(self._handshake))
            self._handshake = None
        if self._state is InboundState.FLUSH:
            try:
                await self._writer.drain()
            except OSError as err:
                raise HandshakeError(f"Cannot flush handshake: {err}") from err
            self._state = InboundState.DONE

    async def process(self) -> None:
        """Send and flush the pending handshake, if any, without reading messages."""
        await self._send_pending()

    async def receive(self) -> bytes | None:
        """Return the next notification, or ``None`` once both sides have closed.

        Waits until a handshake has been provided with :meth:`set_handshake`.
        """
        while True:
            state = self._state
            if state is InboundState.WAITING:
                await self._handshake_ready.wait()
            elif state in (InboundState.SENDING, InboundState.FLUSH):
                await self._send_pending()
            elif state is InboundState.DONE:
                length = await _read_varint(self._reader, eof_ok=True)
                if length is None:
                    _LOG.debug("closing in response to peer name=%s", self.negotiated_name)
                    self._state = InboundState.NEEDS_CLOSE
                    continue
                return await _read_exact(self._reader, length) if length else b""
            elif state is InboundState.NEEDS_CLOSE:
                await _close_write_side(self._writer)
                self._state = InboundState.FULLY_CLOSED
            else:
                return None

    def __aiter__(self) -> HandshakeInboundSubstream:
        return self

    async def __anext__(self) -> bytes:
        message = await self.receive()
        if message is None:
            raise StopAsyncIteration
        return message


@dataclass
class HandshakeInboundOpen:
    """Result of an inbound upgrade: the remote handshake and the substream."""

    handshake: bytes
    substream: HandshakeInboundSubstream


@dataclass(frozen=True)
class HandshakeInbound:
    """Upgrade that accepts a substream and reads the remote handshake."""

    name: str

    def protocol_info(self) -> list[str]:
        """Protocol names this upgrade negotiates."""
        return [self.name]

    async def upgrade_inbound(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        negotiated_name: str,
    ) -> HandshakeInboundOpen:
        """Read the remote handshake; ours is sent later through the substream."""
        _LOG.debug("inbound upgrade name=%s current=%s", negotiated_name, self.name)
        handshake = await _read_handshake(reader, negotiated_name)
        return HandshakeInboundOpen(
            handshake=handshake,
            substream=HandshakeInboundSubstream(reader, writer, negotiated_name),
        )


class HandshakeOutboundSubstream:
    """Outbound substream on which notifications are sent."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer

    def send(self, message: bytes) -> None:
        """Queue a length-prefixed message; call :meth:`flush` to push it out."""
        self._writer.write(_frame(message))

    async def flush(self) -> None:
        """Push the queued messages to the remote."""
        try:
            await self._writer.drain()
        except OSError as err:
            raise HandshakeError(f"Cannot flush the substream: {err}") from err

    async def close(self) -> None:
        """Flush and close our writing side."""
        await _close_write_side(self._writer)


@dataclass
class HandshakeOutboundOpen:
    """Result of an outbound upgrade: the remote handshake and the substream."""

    handshake: bytes
    substream: HandshakeOutboundSubstream


@dataclass(frozen=True)
class HandshakeOutbound:
    """Upgrade that opens a substream by exchanging handshakes."""

    name: str
    handshake: bytes = field(default=b"")

    def __post_init__(self) -> None:
        object.__setattr__(self, "handshake", bytes(self.handshake))

    def protocol_info(self) -> list[str]:
        """Protocol names this upgrade negotiates."""
        return [self.name]

    async def upgrade_outbound(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        negotiated_name: str,
    ) -> HandshakeOutboundOpen:
        """Send our handshake, then read the one the remote sends back."""
        _LOG.debug("outbound upgrade name=%s current=%s", negotiated_name, self.name)
        await write_length_prefixed(writer, self.handshake)
        handshake = await _read_handshake(reader, negotiated_name)
        return HandshakeOutboundOpen(
            handshake=handshake,
            substream=HandshakeOutboundSubstream(reader, writer),
        )