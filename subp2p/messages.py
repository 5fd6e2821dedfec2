"""Messages generated by the notification protocols over the wire."""

from __future__ import annotations

import string
import struct
from dataclasses import dataclass
from enum import Enum

HASH_LENGTH = 32
"""Length in bytes of a block hash."""

_U32_MAX = 0xFFFF_FFFF
_HANDSHAKE_LAYOUT = struct.Struct("<BI32s32s")


class DecodeError(ValueError):
    """Raised when bytes or text cannot be decoded into a message."""


class ProtocolRole(Enum):
    """The role of a peer in the network, as declared over the wire."""

    FULL_NODE = 0b0000_0001
    """Stores the state of the chain; does not take part in consensus."""
    LIGHT_NODE = 0b0000_0010
    """Light client; should not receive transaction messages."""
    AUTHORITY = 0b0000_0100
    """Authors blocks and takes part in consensus."""

    def encoded(self) -> int:
        """Return the single-byte wire value of this role."""
        return self.value

    def encode(self) -> bytes:
        """Return the scale encoding of this role."""
        return bytes([self.value])


def decode_role(data: bytes) -> ProtocolRole:
    """Decode a role from the first byte of ``data``."""
    if not data:
        raise DecodeError("Not enough data to decode a protocol role")
    try:
        return ProtocolRole(data[0])
    except ValueError:
        raise DecodeError("Invalid bytes") from None


def _check_hash(value: object, field: str) -> bytes:
    try:
        raw = bytes(value)  # type: ignore[call-overload]
    except TypeError:
        raise TypeError(f"{field} must be bytes-like") from None
    if len(raw) != HASH_LENGTH:
        raise ValueError(f"{field} must be {HASH_LENGTH} bytes, got {len(raw)}")
    return raw


def _parse_hex_hash(text: str) -> bytes:
    while text.startswith("0x"):
        text = text[2:]
    if len(text) % 2:
        raise DecodeError("Odd number of hex digits")
    if any(char not in string.hexdigits for char in text):
        raise DecodeError("Invalid hex character")
    raw = bytes.fromhex(text)
    if len(raw) != HASH_LENGTH:
        raise DecodeError(f"Expected a {HASH_LENGTH}-byte hash, got {len(raw)} bytes")
    return raw


@dataclass(frozen=True)
class BlockAnnouncesHandshake:
    """Handshake sent when negotiating a block announces substream.

    At least the genesis hash must match the remote peer, otherwise the
    substream is dropped by the remote.
    """

    roles: int
    best_number: int
    best_hash: bytes
    genesis_hash: bytes

    def __post_init__(self) -> None:
        if not 0 <= self.roles <= 0xFF:
            raise ValueError("roles must fit in one byte")
        if not 0 <= self.best_number <= _U32_MAX:
            raise ValueError("best_number must fit in 32 bits")
        object.__setattr__(self, "best_hash", _check_hash(self.best_hash, "best_hash"))
        object.__setattr__(
            self, "genesis_hash", _check_hash(self.genesis_hash, "genesis_hash")
        )

    @classmethod
    def from_genesis(cls, genesis_hash: bytes) -> BlockAnnouncesHandshake:
        """Handshake of a full node whose best block is the genesis block."""
        return cls(
            roles=4,
            best_number=0,
            best_hash=genesis_hash,
            genesis_hash=genesis_hash,
        )

    @classmethod
    def from_hex_genesis(cls, genesis_hash: str) -> BlockAnnouncesHandshake:
        """Like :meth:`from_genesis`, from a hex string with optional ``0x``."""
        return cls.from_genesis(_parse_hex_hash(genesis_hash))

    def encode(self) -> bytes:
        """Return the scale encoding of the handshake."""
        return _HANDSHAKE_LAYOUT.pack(
            self.roles, self.best_number, self.best_hash, self.genesis_hash
        )

    @classmethod
    def decode(cls, data: bytes) -> BlockAnnouncesHandshake:
        """Decode a handshake from the start of ``data``."""
        if len(data) < _HANDSHAKE_LAYOUT.size:
            raise DecodeError(
                f"Handshake needs {_HANDSHAKE_LAYOUT.size} bytes, got {len(data)}"
            )
        roles, best_number, best_hash, genesis_hash = _HANDSHAKE_LAYOUT.unpack_from(
            bytes(data)
        )
        return cls(
            roles=roles,
            best_number=best_number,
            best_hash=best_hash,
            genesis_hash=genesis_hash,
        )