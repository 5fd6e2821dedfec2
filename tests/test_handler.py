import asyncio

import pytest

from subp2p.events import (
    ClosedState,
    CloseDesired,
    CloseProtocol,
    ConnectedPoint,
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
    ProtocolsData,
    protocol_names,
)
from subp2p.handler import NotificationsHandler
from subp2p.handshake import (
    HandshakeInboundOpen,
    HandshakeInboundSubstream,
    HandshakeOutboundOpen,
    HandshakeOutboundSubstream,
    InboundState,
    encode_varint,
)
from subp2p.messages import BlockAnnouncesHandshake, ProtocolRole

GENESIS = bytes(range(32))
PEER = "12D3KooWExamplePeer"


class FakeWriter:
    def __init__(self, fail=False):
        self.data = bytearray()
        self.fail = fail
        self.eof = False

    def write(self, data):
        self.data.extend(data)

    async def drain(self):
        if self.fail:
            raise OSError("broken pipe")

    def can_write_eof(self):
        return True

    def write_eof(self):
        self.eof = True


def make_handler(role=ProtocolRole.FULL_NODE):
    return NotificationsHandler(
        PEER,
        ConnectedPoint.dialer("/ip4/127.0.0.1/tcp/30333"),
        ProtocolsData(genesis_hash=GENESIS, node_role=role),
    )


def make_inbound(name="proto"):
    reader = asyncio.StreamReader()
    writer = FakeWriter()
    substream = HandshakeInboundSubstream(reader, writer, name)
    return reader, writer, HandshakeInboundOpen(handshake=b"remote", substream=substream)


def make_outbound(fail=False):
    reader = asyncio.StreamReader()
    writer = FakeWriter(fail=fail)
    substream = HandshakeOutboundSubstream(reader, writer)
    return writer, HandshakeOutboundOpen(handshake=b"remote-out", substream=substream)


async def drain_events(handler):
    events = []
    while True:
        event = await handler.poll()
        if event is None:
            return events
        events.append(event)


async def poll_until(handler, predicate, attempts=50):
    for _ in range(attempts):
        event = await handler.poll()
        if event is not None and predicate(event):
            return event
        await asyncio.sleep(0)
    raise AssertionError("event never arrived")


def test_protocols_built_from_genesis():
    handler = make_handler()
    blocks, transactions = protocol_names(GENESIS)
    assert [p.name for p in handler.protocols] == [blocks, transactions]
    assert handler.protocols[0].handshake == BlockAnnouncesHandshake.from_genesis(GENESIS).encode()
    assert handler.protocols[1].handshake == b"\x01"
    assert all(isinstance(p.state, ClosedState) for p in handler.protocols)


def test_transactions_handshake_carries_role():
    handler = make_handler(ProtocolRole.AUTHORITY)
    assert handler.protocols[1].handshake == b"\x04"


def test_listen_protocol_offers_all_names():
    handler = make_handler()
    infos = handler.listen_protocol().protocol_info()
    assert [(info.data, info.index) for info in infos] == [
        (handler.protocols[0].name, 0),
        (handler.protocols[1].name, 1),
    ]


@pytest.mark.asyncio
async def test_open_from_closed_requests_substream():
    handler = make_handler()
    assert handler.keep_alive() is False
    handler.on_behaviour_event(OpenProtocol(0))
    assert handler.keep_alive() is True
    event = await handler.poll()
    assert isinstance(event, OutboundSubstreamRequest)
    assert event.index == 0
    assert event.protocol.name == handler.protocols[0].name
    assert event.protocol.handshake == handler.protocols[0].handshake
    state = handler.protocols[0].state
    assert isinstance(state, OpeningState)
    assert state.inbound is False
    assert state.inbound_substream is None


@pytest.mark.asyncio
async def test_outbound_negotiated_completes_handshake():
    handler = make_handler()
    handler.on_behaviour_event(OpenProtocol(1))
    _, opened = make_outbound()
    handler.on_fully_negotiated_outbound(1, opened)
    events = await drain_events(handler)
    completed = events[-1]
    assert isinstance(completed, HandshakeCompleted)
    assert completed.index == 1
    assert completed.handshake == b"remote-out"
    assert completed.is_inbound is False
    assert completed.endpoint == handler.endpoint
    state = handler.protocols[1].state
    assert isinstance(state, OpenState)
    assert state.recv is completed.sender
    assert state.outbound_substream is opened.substream


@pytest.mark.asyncio
async def test_inbound_then_open_moves_to_opening_inbound():
    handler = make_handler()
    _, _, opened = make_inbound()
    handler.on_fully_negotiated_inbound(0, opened)
    assert isinstance(handler.protocols[0].state, OpenDesiredByRemoteState)
    assert await handler.poll() == OpenDesiredByRemote(0)

    handler.on_behaviour_event(OpenProtocol(0))
    event = await handler.poll()
    assert isinstance(event, OutboundSubstreamRequest)
    state = handler.protocols[0].state
    assert isinstance(state, OpeningState)
    assert state.inbound is True
    assert state.inbound_substream is opened.substream
    assert opened.substream.state is InboundState.SENDING


@pytest.mark.asyncio
async def test_dial_error_while_opening_fails_handshake():
    handler = make_handler()
    handler.on_behaviour_event(OpenProtocol(0))
    handler.on_dial_upgrade_error(0)
    events = await drain_events(handler)
    assert events[-1] == HandshakeFailed(0)
    assert handler.protocols[0].state == ClosedState(pending_opening=False)


@pytest.mark.asyncio
async def test_close_while_opening_sets_pending_and_skips_next_request():
    handler = make_handler()
    handler.on_behaviour_event(OpenProtocol(0))
    await handler.poll()
    handler.on_behaviour_event(CloseProtocol(0))
    events = await drain_events(handler)
    assert events == [HandshakeFailed(0), ProtocolClosed(0)]
    assert handler.protocols[0].state == ClosedState(pending_opening=True)

    handler.on_behaviour_event(OpenProtocol(0))
    assert await drain_events(handler) == []
    assert isinstance(handler.protocols[0].state, OpeningState)


@pytest.mark.asyncio
async def test_close_when_closed_still_answers():
    handler = make_handler()
    handler.on_behaviour_event(CloseProtocol(1))
    assert await drain_events(handler) == [ProtocolClosed(1)]
    assert handler.keep_alive() is False


@pytest.mark.asyncio
async def test_queued_messages_are_sent_length_prefixed():
    handler = make_handler()
    handler.on_behaviour_event(OpenProtocol(1))
    writer, opened = make_outbound()
    handler.on_fully_negotiated_outbound(1, opened)
    events = await drain_events(handler)
    sender = events[-1].sender
    sender.put_nowait(b"hello")
    sender.put_nowait(b"")
    assert await handler.poll() is None
    assert bytes(writer.data) == b"\x05hello\x00"
    assert sender.empty()


@pytest.mark.asyncio
async def test_inbound_notifications_are_received():
    handler = make_handler()
    reader, inbound_writer, inbound = make_inbound()
    handler.on_fully_negotiated_inbound(0, inbound)
    handler.on_behaviour_event(OpenProtocol(0))
    _, outbound = make_outbound()
    handler.on_fully_negotiated_outbound(0, outbound)
    events = await drain_events(handler)
    completed = events[-1]
    assert isinstance(completed, HandshakeCompleted)
    assert completed.is_inbound is True

    reader.feed_data(b"\x03abc")
    event = await poll_until(handler, lambda e: isinstance(e, Notification))
    assert event == Notification(index=0, bytes=b"abc")
    handshake = handler.protocols[0].handshake
    assert bytes(inbound_writer.data) == encode_varint(len(handshake)) + handshake

    reader.feed_eof()
    for _ in range(50):
        await handler.poll()
        if handler.protocols[0].state.inbound_substream is None:
            break
        await asyncio.sleep(0)
    assert handler.protocols[0].state.inbound_substream is None
    assert inbound_writer.eof is True


@pytest.mark.asyncio
async def test_second_inbound_ignored_when_already_handled():
    handler = make_handler()
    _, _, first = make_inbound()
    handler.on_fully_negotiated_inbound(0, first)
    handler.on_behaviour_event(OpenProtocol(0))
    _, _, second = make_inbound()
    handler.on_fully_negotiated_inbound(0, second)
    assert handler.protocols[0].state.inbound_substream is first.substream
    assert second.substream.state is InboundState.WAITING


@pytest.mark.asyncio
async def test_inbound_while_opening_gets_handshake():
    handler = make_handler()
    handler.on_behaviour_event(OpenProtocol(1))
    _, _, opened = make_inbound()
    handler.on_fully_negotiated_inbound(1, opened)
    assert handler.protocols[1].state.inbound_substream is opened.substream
    assert opened.substream.state is InboundState.SENDING


@pytest.mark.asyncio
async def test_idle_handler_polls_nothing():
    handler = make_handler()
    assert await handler.poll() is None


def test_unknown_index_raises():
    handler = make_handler()
    with pytest.raises(IndexError):
        handler.on_behaviour_event(OpenProtocol(2))
    with pytest.raises(IndexError):
        handler.on_dial_upgrade_error(-1)


def test_unknown_behaviour_event_raises():
    handler = make_handler()
    with pytest.raises(TypeError):
        handler.on_behaviour_event("open")