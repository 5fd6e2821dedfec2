"""Configuration of the discovery protocol and of the transport layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

KIB = 1024
"""One kibibyte in bytes."""
MIB = 1024 * KIB
"""One mebibyte in bytes."""

_U32_MAX = 0xFFFF_FFFF


def kademlia_protocol_name(genesis_hash: str) -> str:
    """Name of the Kademlia protocol for the chain with this genesis hash."""
    return f"/{genesis_hash}/kad"


@dataclass(frozen=True)
class KademliaConfig:
    """Settings of a Kademlia instance backed by an in-memory record store."""

    local_peer_id: str
    protocol_names: tuple[str, ...]
    max_packet_size: int
    record_ttl: timedelta | None
    provider_record_ttl: timedelta | None
    query_timeout: timedelta


@dataclass(frozen=True)
class DiscoveryConfig:
    """Options for the discovery protocol (Kademlia)."""

    max_packet_size: int = 8192
    record_ttl: timedelta | None = None
    provider_ttl: timedelta | None = None
    query_timeout: timedelta = timedelta(seconds=60)

    def __post_init__(self) -> None:
        if self.max_packet_size < 0:
            raise ValueError("max_packet_size must not be negative")

    def build(self, local_peer_id: str, genesis_hash: str) -> KademliaConfig:
        """Kademlia settings speaking only the genesis protocol of the chain."""
        return KademliaConfig(
            local_peer_id=local_peer_id,
            protocol_names=(kademlia_protocol_name(genesis_hash),),
            max_packet_size=self.max_packet_size,
            record_ttl=self.record_ttl,
            provider_record_ttl=self.provider_ttl,
            query_timeout=self.query_timeout,
        )


@dataclass(frozen=True)
class YamuxConfig:
    """Multiplexer settings; window updates are sent only once data is read."""

    receive_window_size: int
    max_buffer_size: int
    window_update_on_read: bool = True


@dataclass(frozen=True)
class TransportConfig:
    """Options for the DNS/TCP and WebSocket transport with Noise and Yamux."""

    timeout: timedelta = timedelta(seconds=20)
    yamux_window_size: int = 256 * KIB
    yamux_maximum_buffer_size: int = MIB

    def __post_init__(self) -> None:
        if self.timeout < timedelta(0):
            raise ValueError("timeout must not be negative")
        if not 0 <= self.yamux_window_size <= _U32_MAX:
            raise ValueError("yamux_window_size must fit in 32 bits")
        if self.yamux_maximum_buffer_size < 0:
            raise ValueError("yamux_maximum_buffer_size must not be negative")

    def yamux(self) -> YamuxConfig:
        """The multiplexing settings of this transport."""
        return YamuxConfig(
            receive_window_size=self.yamux_window_size,
            max_buffer_size=self.yamux_maximum_buffer_size,
        )