"""Connection handler that drives the notification protocols of one connection."""

from __future__ import annotations

import asyncio
import logging
from collections import deque

from subp2p.events import (
    ClosedState,
    CloseDesired,
    CloseProtocol,
    ConnectedPoint,
    FromBehaviour,
    HandshakeCompleted,
    HandshakeFailed,
    Notification,
    OpenDesiredByRemote,
    OpenDesiredByRemoteState,
    OpeningState,
    OpenProtocol,
    OpenState,
    OutboundSubstreamRequest,
    ProtocolClosed,
    ProtocolDetails,
    ProtocolsData,
    ToBehaviour,
    protocol_names,
)
from subp2p.handshake import (
    HandshakeError,
    HandshakeInbound,
    HandshakeInboundOpen,
    HandshakeInboundSubstream,
    HandshakeOutbound,
    HandshakeOutboundOpen,
)
from subp2p.messages import BlockAnnouncesHandshake
from subp2p.upgrades import CombineUpgrades

_LOG = logging.getLogger("subp2p.handler")

SEND_QUEUE_CAPACITY = 1024
"""Capacity of the queue on which the user submits messages for a protocol."""

HandlerEvent = ToBehaviour | OutboundSubstreamRequest


class NotificationsHandler:
    """Handles the notification protocols on a single connection.

    Protocol 0 is block announces, protocol 1 is transactions.
    """

    def __init__(self, peer: str, endpoint: ConnectedPoint, data: ProtocolsData) -> None:
        self.peer = peer
        self.endpoint = endpoint
        blocks, transactions = protocol_names(data.genesis_hash)
        block_announces = BlockAnnouncesHandshake.from_genesis(data.genesis_hash)
        self.protocols: list[ProtocolDetails] = [
            ProtocolDetails(
                name=blocks,
                handshake=block_announces.encode(),
                upgrade=HandshakeInbound(blocks),
                state=ClosedState(pending_opening=False),
            ),
            # Protocols without a specific handshake submit the node role.
            ProtocolDetails(
                name=transactions,
                handshake=data.node_role.encode(),
                upgrade=HandshakeInbound(transactions),
                state=ClosedState(pending_opening=False),
            ),
        ]
        self._pending_events: deque[HandlerEvent] = deque()
        self._receive_tasks: dict[
            int, tuple[HandshakeInboundSubstream, asyncio.Task]
        ] = {}

    def _protocol(self, index: int) -> ProtocolDetails:
        if not 0 <= index < len(self.protocols):
            raise IndexError(f"No notification protocol at index {index}")
        return self.protocols[index]

    def listen_protocol(self) -> CombineUpgrades:
        """The upgrade offering every notification protocol to inbound substreams."""
        return CombineUpgrades([proto.upgrade for proto in self.protocols])

    def on_fully_negotiated_inbound(self, index: int, opened: HandshakeInboundOpen) -> None:
        """An inbound substream completed its upgrade for protocol ``index``."""
        proto = self._protocol(index)
        state = proto.state
        _LOG.debug("negotiated inbound peer=%s index=%d", self.peer, index)

        if isinstance(state, ClosedState):
            self._pending_events.append(OpenDesiredByRemote(index))
            proto.state = OpenDesiredByRemoteState(
                inbound_substream=opened.substream,
                pending_opening=state.pending_opening,
            )
        elif isinstance(state, OpenDesiredByRemoteState):
            _LOG.debug("inbound already desired by remote peer=%s index=%d", self.peer, index)
        else:
            if state.inbound_substream is not None:
                _LOG.debug("inbound handshake already handled peer=%s index=%d", self.peer, index)
                return
            opened.substream.set_handshake(proto.handshake)
            state.inbound_substream = opened.substream

    def on_fully_negotiated_outbound(self, index: int, opened: HandshakeOutboundOpen) -> None:
        """An outbound substream completed its handshake for protocol ``index``."""
        proto = self._protocol(index)
        state = proto.state
        _LOG.debug("negotiated outbound peer=%s index=%d", self.peer, index)

        if isinstance(state, (ClosedState, OpenDesiredByRemoteState)):
            state.pending_opening = False
        elif isinstance(state, OpeningState):
            queue: asyncio.Queue = asyncio.Queue(maxsize=SEND_QUEUE_CAPACITY)
            proto.state = OpenState(
                recv=queue,
                inbound_substream=state.inbound_substream,
                outbound_substream=opened.substream,
            )
            self._pending_events.append(
                HandshakeCompleted(
                    index=index,
                    endpoint=self.endpoint,
                    handshake=opened.handshake,
                    is_inbound=state.inbound,
                    sender=queue,
                )
            )
        else:
            _LOG.debug("outbound negotiated while open peer=%s index=%d", self.peer, index)

    def on_dial_upgrade_error(self, index: int) -> None:
        """Opening an outbound substream for protocol ``index`` failed."""
        proto = self._protocol(index)
        state = proto.state
        _LOG.debug("dial upgrade error peer=%s index=%d", self.peer, index)

        if isinstance(state, (ClosedState, OpenDesiredByRemoteState)):
            state.pending_opening = False
        elif isinstance(state, OpeningState):
            proto.state = ClosedState(pending_opening=False)
            self._pending_events.append(HandshakeFailed(index))

    def on_behaviour_event(self, event: FromBehaviour) -> None:
        """Apply an open or close request from the behaviour."""
        if isinstance(event, OpenProtocol):
            self._open(event.index)
        elif isinstance(event, CloseProtocol):
            self._close(event.index)
        else:
            raise TypeError(f"Unexpected behaviour event: {event!r}")

    def _request_substream(self, proto: ProtocolDetails, index: int) -> None:
        self._pending_events.append(
            OutboundSubstreamRequest(
                protocol=HandshakeOutbound(proto.name, proto.handshake), index=index
            )
        )

    def _open(self, index: int) -> None:
        proto = self._protocol(index)
        state = proto.state
        _LOG.debug("open requested peer=%s index=%d", self.peer, index)

        if isinstance(state, ClosedState):
            if not state.pending_opening:
                self._request_substream(proto, index)
            proto.state = OpeningState(inbound_substream=None, inbound=False)
        elif isinstance(state, OpenDesiredByRemoteState):
            if not state.pending_opening:
                self._request_substream(proto, index)
            state.inbound_substream.set_handshake(proto.handshake)
            proto.state = OpeningState(inbound_substream=state.inbound_substream, inbound=True)
        else:
            _LOG.debug("open requested in mismatched state peer=%s index=%d", self.peer, index)

    def _close(self, index: int) -> None:
        proto = self._protocol(index)
        state = proto.state
        _LOG.debug("close requested peer=%s index=%d", self.peer, index)

        if isinstance(state, OpenDesiredByRemoteState):
            proto.state = ClosedState(pending_opening=state.pending_opening)
        elif isinstance(state, OpeningState):
            proto.state = ClosedState(pending_opening=True)
            self._pending_events.append(HandshakeFailed(index))
        elif isinstance(state, OpenState):
            proto.state = ClosedState(pending_opening=False)

        self._pending_events.append(ProtocolClosed(index))

    def keep_alive(self) -> bool:
        """Whether any protocol is not closed."""
        return any(not isinstance(proto.state, ClosedState) for proto in self.protocols)

    def _poll_receive(self, index: int, substream: HandshakeInboundSubstream) -> tuple[bool, bytes | None]:
        """Return ``(finished, message)`` for the receive task of ``substream``."""
        entry = self._receive_tasks.get(index)
        if entry is not None and entry[0] is not substream:
            entry[1].cancel()
            entry = None
        if entry is None:
            task = asyncio.ensure_future(substream.receive())
            self._receive_tasks[index] = (substream, task)
            entry = (substream, task)
        task = entry[1]
        if not task.done():
            return False, None
        del self._receive_tasks[index]
        if task.cancelled() or task.exception() is not None:
            return True, None
        return True, task.result()

    async def poll(self) -> HandlerEvent | None:
        """Advance the protocols and return the next event, or ``None`` if none is ready."""
        if self._pending_events:
            return self._pending_events.popleft()

        # Send the messages the user queued on open protocols.
        for index, proto in enumerate(self.protocols):
            state = proto.state
            if isinstance(state, OpenState) and state.outbound_substream is not None:
                while not state.recv.empty():
                    message = state.recv.get_nowait()
                    _LOG.debug("sending message peer=%s index=%d", self.peer, index)
                    state.outbound_substream.send(message)

        # Flush the outbound substreams.
        for index, proto in enumerate(self.protocols):
            state = proto.state
            if isinstance(state, OpenState) and state.outbound_substream is not None:
                try:
                    await state.outbound_substream.flush()
                except HandshakeError:
                    state.outbound_substream = None
                    return CloseDesired(index)

        # Drive the inbound substreams.
        for index, proto in enumerate(self.protocols):
            state = proto.state
            if isinstance(state, OpenState) and state.inbound_substream is not None:
                finished, message = self._poll_receive(index, state.inbound_substream)
                if not finished:
                    continue
                if message is None:
                    state.inbound_substream = None
                else:
                    return Notification(index=index, bytes=message)
            elif isinstance(state, OpenDesiredByRemoteState):
                try:
                    await state.inbound_substream.process()
                except HandshakeError:
                    proto.state = ClosedState(pending_opening=state.pending_opening)
                    return CloseDesired(index)
            elif isinstance(state, OpeningState) and state.inbound_substream is not None:
                try:
                    await state.inbound_substream.process()
                except HandshakeError:
                    state.inbound_substream = None

        return None