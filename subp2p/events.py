"""Events, protocol states and settings shared by the notifications handler."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Union

from subp2p.handshake import (
    HandshakeInbound,
    HandshakeInboundSubstream,
    HandshakeOutbound,
    HandshakeOutboundSubstream,
)
from subp2p.messages import HASH_LENGTH, ProtocolRole

BLOCK_ANNOUNCES_INDEX = 0
"""Protocol index for block announces."""
TRANSACTIONS_INDEX = 1
"""Protocol index for transactions."""


def protocol_names(genesis_hash: bytes) -> tuple[str, str]:
    """Names of the block-announces and transactions protocols of a chain.

    The genesis hash is hex-encoded without a ``0x`` prefix.
    """
    genesis = bytes(genesis_hash).hex()
    return (f"/{genesis}/block-announces/1", f"/{genesis}/transactions/1")


@dataclass(frozen=True)
class ConnectedPoint:
    """How a connection was established: by dialing or by listening."""

    is_dialer: bool
    address: str
    """The remote address: the dialed address, or the send-back address."""
    local_addr: str | None = None

    @classmethod
    def dialer(cls, address: str) -> ConnectedPoint:
        """We dialed ``address``."""
        return cls(is_dialer=True, address=address)

    @classmethod
    def listener(cls, local_addr: str, send_back_addr: str) -> ConnectedPoint:
        """The remote at ``send_back_addr`` reached us on ``local_addr``."""
        return cls(is_dialer=False, address=send_back_addr, local_addr=local_addr)

    @property
    def is_listener(self) -> bool:
        return not self.is_dialer

    @property
    def send_back_addr(self) -> str | None:
        return None if self.is_dialer else self.address


@dataclass(frozen=True)
class ProtocolsData:
    """Data needed by the supported notification protocols."""

    genesis_hash: bytes
    """Genesis hash used to build protocol names and the block-announces handshake."""
    node_role: ProtocolRole
    """Role declared on protocols that have no specific handshake."""

    def __post_init__(self) -> None:
        raw = bytes(self.genesis_hash)
        if len(raw) != HASH_LENGTH:
            raise ValueError(f"genesis_hash must be {HASH_LENGTH} bytes, got {len(raw)}")
        object.__setattr__(self, "genesis_hash", raw)


# Events from the behaviour to the handler.


@dataclass(frozen=True)
class OpenProtocol:
    """Open the notification protocol at ``index``."""

    index: int


@dataclass(frozen=True)
class CloseProtocol:
    """Close the notification protocol at ``index``."""

    index: int


FromBehaviour = Union[OpenProtocol, CloseProtocol]


# Events from the handler to the behaviour.


@dataclass
class HandshakeCompleted:
    """The handshake was received in the expected format; the protocol is open."""

    index: int
    endpoint: ConnectedPoint
    handshake: bytes
    is_inbound: bool
    sender: asyncio.Queue
    """Queue on which messages to send over this protocol are put."""


@dataclass(frozen=True)
class HandshakeFailed:
    """The handshake could not be established."""

    index: int


@dataclass(frozen=True)
class OpenDesiredByRemote:
    """The remote opened a substream for this protocol."""

    index: int


@dataclass(frozen=True)
class CloseDesired:
    """The protocol's substream failed and should be closed."""

    index: int


@dataclass(frozen=True)
class ProtocolClosed:
    """Answer to :class:`CloseProtocol`."""

    index: int


@dataclass(frozen=True)
class Notification:
    """A notification received on the protocol."""

    index: int
    bytes: bytes


ToBehaviour = Union[
    HandshakeCompleted,
    HandshakeFailed,
    OpenDesiredByRemote,
    CloseDesired,
    ProtocolClosed,
    Notification,
]


@dataclass(frozen=True)
class OutboundSubstreamRequest:
    """Ask the connection to open an outbound substream for the protocol."""

    protocol: HandshakeOutbound
    index: int


# Protocol states.
#
# Closed -> OpenDesiredByRemote -> (behaviour acknowledges) -> Opening -> Open


@dataclass
class ClosedState:
    """The protocol is closed."""

    pending_opening: bool = False


@dataclass
class OpenDesiredByRemoteState:
    """The remote opened a substream that waits for our decision."""

    inbound_substream: HandshakeInboundSubstream
    pending_opening: bool = False


@dataclass
class OpeningState:
    """The handshake is being negotiated."""

    inbound_substream: HandshakeInboundSubstream | None = None
    inbound: bool = False


@dataclass
class OpenState:
    """The handshake was negotiated; notifications flow."""

    recv: asyncio.Queue
    inbound_substream: HandshakeInboundSubstream | None = None
    outbound_substream: HandshakeOutboundSubstream | None = None


State = Union[ClosedState, OpenDesiredByRemoteState, OpeningState, OpenState]


@dataclass
class ProtocolDetails:
    """Configuration and current state of one notification protocol."""

    name: str
    handshake: bytes
    upgrade: HandshakeInbound
    state: State = field(default_factory=ClosedState)