"""Network behaviour that manages the notification protocols of all connections."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Union

from subp2p.events import (
    BLOCK_ANNOUNCES_INDEX,
    TRANSACTIONS_INDEX,
    CloseDesired,
    CloseProtocol,
    ConnectedPoint,
    FromBehaviour,
    HandshakeCompleted,
    HandshakeFailed,
    Notification,
    OpenDesiredByRemote,
    OpenProtocol,
    ProtocolClosed,
    ProtocolsData,
)
from subp2p.handler import NotificationsHandler

_LOG = logging.getLogger("subp2p.behavior")

SUPPORTED_PROTOCOLS = (BLOCK_ANNOUNCES_INDEX, TRANSACTIONS_INDEX)
"""Indexes of the notification protocols opened on every connection."""


@dataclass
class CustomProtocolOpen:
    """A notification protocol was opened with the remote."""

    peer_id: str
    index: int
    received_handshake: bytes
    inbound: bool
    sender: asyncio.Queue
    """Queue on which messages to send over this protocol are put."""


@dataclass(frozen=True)
class CustomProtocolClosed:
    """A notification protocol was closed; its sender is stale."""

    peer_id: str
    index: int


@dataclass(frozen=True)
class NotificationReceived:
    """A notification message was received on a protocol."""

    peer_id: str
    index: int
    message: bytes


@dataclass(frozen=True)
class NotifyHandler:
    """Deliver ``event`` to the handler of one connection of a peer."""

    peer_id: str
    connection_id: object
    event: FromBehaviour


ToSwarm = Union[CustomProtocolOpen, CustomProtocolClosed, NotificationReceived]
BehaviourEvent = Union[ToSwarm, NotifyHandler]


class Notifications:
    """Handles the notification protocols of every connection."""

    def __init__(self, data: ProtocolsData) -> None:
        self.data = data
        self._events: deque[BehaviourEvent] = deque()
        self._peers: dict[str, set[object]] = {}

    def _propagate(self, event: BehaviourEvent) -> None:
        self._events.append(event)

    def _notify_all(self, peer_id: str, connection_id: object, make) -> None:
        for index in SUPPORTED_PROTOCOLS:
            self._propagate(NotifyHandler(peer_id, connection_id, make(index)))

    def handle_established_inbound_connection(
        self, connection_id: object, peer: str, local_addr: str, remote_addr: str
    ) -> NotificationsHandler:
        """Create the handler of a connection the remote opened."""
        _LOG.debug("new inbound connection peer=%s connection=%s", peer, connection_id)
        return NotificationsHandler(
            peer, ConnectedPoint.listener(local_addr, remote_addr), self.data
        )

    def handle_established_outbound_connection(
        self, connection_id: object, peer: str, addr: str
    ) -> NotificationsHandler:
        """Create the handler of a connection we dialed."""
        _LOG.debug("new outbound connection peer=%s connection=%s", peer, connection_id)
        return NotificationsHandler(peer, ConnectedPoint.dialer(addr), self.data)

    def on_connection_established(self, peer_id: str, connection_id: object) -> None:
        """Track the connection and ask its handler to open every protocol."""
        _LOG.debug("connection established peer=%s connection=%s", peer_id, connection_id)
        self._peers.setdefault(peer_id, set()).add(connection_id)
        self._notify_all(peer_id, connection_id, OpenProtocol)

    def on_connection_closed(self, peer_id: str, connection_id: object) -> None:
        """Forget the connection and ask its handler to close every protocol."""
        _LOG.debug("connection closed peer=%s connection=%s", peer_id, connection_id)
        connections = self._peers.get(peer_id)
        if connections is None:
            _LOG.debug("closed connection of untracked peer=%s", peer_id)
        elif connection_id not in connections:
            _LOG.debug(
                "closed untracked connection peer=%s connection=%s", peer_id, connection_id
            )
        else:
            connections.remove(connection_id)
        self._notify_all(peer_id, connection_id, CloseProtocol)

    def on_connection_handler_event(
        self, peer_id: str, connection_id: object, event: object
    ) -> None:
        """React to an event reported by the handler of a connection."""
        _LOG.debug("handler event peer=%s event=%r", peer_id, event)
        if isinstance(event, HandshakeCompleted):
            self._propagate(
                CustomProtocolOpen(
                    peer_id=peer_id,
                    index=event.index,
                    received_handshake=event.handshake,
                    inbound=event.is_inbound,
                    sender=event.sender,
                )
            )
        elif isinstance(event, HandshakeFailed):
            _LOG.debug(
                "handshake failed peer=%s connection=%s index=%d",
                peer_id,
                connection_id,
                event.index,
            )
        elif isinstance(event, OpenDesiredByRemote):
            # Every protocol the remote opens is accepted.
            self._propagate(NotifyHandler(peer_id, connection_id, OpenProtocol(event.index)))
        elif isinstance(event, CloseDesired):
            self._propagate(NotifyHandler(peer_id, connection_id, CloseProtocol(event.index)))
        elif isinstance(event, ProtocolClosed):
            pass
        elif isinstance(event, Notification):
            self._propagate(
                NotificationReceived(peer_id=peer_id, index=event.index, message=event.bytes)
            )
        else:
            raise TypeError(f"Unexpected handler event: {event!r}")

    def connections(self, peer_id: str) -> frozenset:
        """Identifiers of the tracked connections with ``peer_id``."""
        return frozenset(self._peers.get(peer_id, ()))

    def poll(self) -> BehaviourEvent | None:
        """Return the oldest pending event, or ``None`` if there is none."""
        return self._events.popleft() if self._events else None