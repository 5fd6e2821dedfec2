"""Notification protocols, handshakes, peer tracking and SS58 addresses for Substrate networks."""

__version__ = "0.1.0"

__all__ = [
    "behavior",
    "config",
    "events",
    "handler",
    "handshake",
    "messages",
    "p2p",
    "peer_behavior",
    "ss58",
    "upgrades",
]