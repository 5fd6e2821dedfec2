"""Peer bookkeeping alongside the ping and identify protocols."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from subp2p.events import ConnectedPoint

AGENT = "subp2p-agent"
"""The agent version announced by this package."""
IDENTIFY_PROTOCOL_VERSION = "/substrate/1.0"
"""Protocol version announced by identify (equivalent of ``/ipfs/id/1.0.0``)."""
PING_PROTOCOL = "/ipfs/ping/1.0.0"
"""Protocol used to periodically ping peers."""

_LOG = logging.getLogger("subp2p.peer_behavior")


@dataclass(frozen=True)
class IdentifyInfo:
    """Information a remote peer reports about itself through identify."""

    public_key: bytes = b""
    protocol_version: str = ""
    agent_version: str = ""
    listen_addrs: tuple[str, ...] = ()
    protocols: tuple[str, ...] = ()
    observed_addr: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "public_key", bytes(self.public_key))
        object.__setattr__(self, "listen_addrs", tuple(self.listen_addrs))
        object.__setattr__(self, "protocols", tuple(self.protocols))


@dataclass(frozen=True)
class Identified:
    """A peer has been identified."""

    peer_id: str
    info: IdentifyInfo


@dataclass
class NodeDetails:
    """What is known about a peer we have connected to."""

    connections: list[ConnectedPoint] = field(default_factory=list)
    protocol_version: str | None = None
    """For example ``ipfs/1.0.0`` or ``polkadot/1.0.0``."""
    agent_version: str | None = None
    """Name and version of the peer, like an HTTP ``User-Agent``."""
    protocols: set[str] = field(default_factory=set)
    """Protocols the peer supports, for example ``/ipfs/ping/1.0.0``."""


class PeerBehaviour:
    """Tracks connected peers, their identify details and our external addresses."""

    def __init__(self, local_public_key: bytes = b"") -> None:
        self.local_public_key = bytes(local_public_key)
        self.protocol_version = IDENTIFY_PROTOCOL_VERSION
        self.agent_version = AGENT
        self._details: dict[str, NodeDetails] = {}
        self._external_addresses: set[str] = set()

    def on_connection_established(self, peer_id: str, endpoint: ConnectedPoint) -> None:
        """Record a new connection with ``peer_id``."""
        details = self._details.get(peer_id)
        if details is None:
            self._details[peer_id] = NodeDetails(connections=[endpoint])
        else:
            details.connections.append(endpoint)

    def on_connection_closed(self, peer_id: str, endpoint: ConnectedPoint) -> None:
        """Forget every connection with ``peer_id`` made through ``endpoint``."""
        details = self._details.get(peer_id)
        if details is not None:
            details.connections = [conn for conn in details.connections if conn != endpoint]

    def on_address_change(
        self, peer_id: str, old: ConnectedPoint, new: ConnectedPoint
    ) -> None:
        """Replace the first connection equal to ``old`` with ``new``."""
        details = self._details.get(peer_id)
        if details is None:
            return
        for position, conn in enumerate(details.connections):
            if conn == old:
                details.connections[position] = new
                break

    def on_external_addr_confirmed(self, addr: str) -> None:
        """Track an external address that was confirmed."""
        self._external_addresses.add(addr)

    def on_external_addr_expired(self, addr: str) -> None:
        """Stop tracking an external address."""
        self._external_addresses.discard(addr)

    def on_identify_received(self, peer_id: str, info: IdentifyInfo) -> Identified:
        """Store what the peer reported about itself and return the event."""
        details = self._details.get(peer_id)
        if details is not None:
            details.agent_version = info.agent_version
            details.protocol_version = info.protocol_version
            details.protocols = set(info.protocols)
        else:
            _LOG.debug("identified untracked peer=%s", peer_id)
        return Identified(peer_id=peer_id, info=info)

    def details(self, peer_id: str) -> NodeDetails | None:
        """Details of ``peer_id``, or ``None`` if it never connected."""
        return self._details.get(peer_id)

    def external_addresses(self) -> frozenset[str]:
        """The confirmed external addresses."""
        return frozenset(self._external_addresses)