"""Helpers for peer addresses and authority discovery keys."""

from __future__ import annotations

import hashlib

_PEER_PROTOCOLS = frozenset({"p2p", "ipfs"})


def get_peer_id(address: str) -> str | None:
    """Return the peer id when the last component of a multiaddress is ``/p2p/<id>``."""
    if not address.startswith("/"):
        raise ValueError(f"Invalid multiaddress: {address!r}")
    parts = address.rstrip("/").split("/")[1:]
    if len(parts) < 2:
        return None
    protocol, value = parts[-2], parts[-1]
    if protocol in _PEER_PROTOCOLS and value:
        return value
    return None


def hash_authority_id(authority_id: bytes) -> bytes:
    """Kademlia key under which the record of an authority is stored."""
    return hashlib.sha256(bytes(authority_id)).digest()