# subp2p

Pure-Python building blocks for the notification protocols and peer
bookkeeping of Substrate-based peer-to-peer networks. There are no
third-party dependencies; Python 3.10 or later is needed.

## What is in the package

- `subp2p.messages`: `BlockAnnouncesHandshake` (roles, best number, best
  hash, genesis hash) with `from_genesis`, `from_hex_genesis` (accepts a
  `0x` prefix), `encode` and `decode`; `ProtocolRole` (`FULL_NODE` = 1,
  `LIGHT_NODE` = 2, `AUTHORITY` = 4) with `encoded` and `encode`;
  `decode_role`. Malformed input raises `DecodeError`.
- `subp2p.handshake`: the two-way, varint length-prefixed handshake over
  asyncio streams. `HandshakeOutbound.upgrade_outbound` sends our handshake
  and reads the remote's; `HandshakeInbound.upgrade_inbound` reads the
  remote's handshake and returns a `HandshakeInboundSubstream`, which sends
  ours once `set_handshake` is called and then yields notifications through
  `receive` (or `async for`). `HandshakeOutboundSubstream` has `send`,
  `flush` and `close`. Handshakes over `MAX_HANDSHAKE_SIZE` (1024 bytes)
  raise `HandshakeTooLarge`; bad varints raise `VarintDecodeError`; both are
  `HandshakeError`s. Also `encode_varint`, `read_varint` and
  `write_length_prefixed`.
- `subp2p.upgrades`: `CombineUpgrades` offers several inbound upgrades at
  once; `protocol_info` tags every protocol name with its upgrade's index as
  a `ProtocolResponse`, and `upgrade_inbound` runs the selected one.
- `subp2p.events`: the events exchanged between behaviour and handler
  (`OpenProtocol`, `CloseProtocol`, `HandshakeCompleted`, `HandshakeFailed`,
  `OpenDesiredByRemote`, `CloseDesired`, `ProtocolClosed`, `Notification`,
  `OutboundSubstreamRequest`), the protocol states, `ConnectedPoint`,
  `ProtocolsData` and `protocol_names`, which gives
  `/<genesis>/block-announces/1` and `/<genesis>/transactions/1`.
- `subp2p.handler`: `NotificationsHandler`, the per-connection state
  machine for those two protocols (index 0 and 1). Feed it negotiated
  substreams and behaviour events; `await poll()` returns the next event or
  `None`; `keep_alive()` tells whether any protocol is not closed.
- `subp2p.behavior`: `Notifications`, which creates handlers for new
  connections, asks them to open both protocols when a connection is
  established and to close them when it is closed, accepts every protocol
  the remote opens, and reports `CustomProtocolOpen`, `NotificationReceived`
  and `NotifyHandler` events through `poll()`. `connections(peer_id)` lists
  the tracked connections of a peer.
- `subp2p.peer_behavior`: `PeerBehaviour` keeps, per peer, a `NodeDetails`
  with its connections, agent and protocol versions and supported protocols,
  plus the set of confirmed external addresses. `on_identify_received`
  stores an `IdentifyInfo` and returns an `Identified` event.
- `subp2p.config`: `DiscoveryConfig` (8192-byte packets, 60 s query timeout)
  whose `build` returns a `KademliaConfig` speaking only `/<genesis>/kad`,
  and `TransportConfig` (20 s timeout, 256 KiB Yamux window, 1 MiB Yamux
  buffer) whose `yamux` returns a `YamuxConfig`.
- `subp2p.ss58`: `to_ss58`, `ss58hash` and `b58encode`.
- `subp2p.p2p`: `get_peer_id` returns the id from a multiaddress ending in
  `/p2p/<id>` (or `/ipfs/<id>`), and `hash_authority_id` gives the SHA-256
  DHT key of an authority.

## Examples

```python
from subp2p.messages import BlockAnnouncesHandshake, ProtocolRole

handshake = BlockAnnouncesHandshake.from_hex_genesis("0x" + "11" * 32)
payload = handshake.encode()
assert BlockAnnouncesHandshake.decode(payload) == handshake
assert ProtocolRole.FULL_NODE.encoded() == 1
```

```python
from subp2p.config import kademlia_protocol_name
from subp2p.events import protocol_names

block_announces, transactions = protocol_names(bytes.fromhex("11" * 32))
kad = kademlia_protocol_name("11" * 32)
```

Driving the behaviour and a handler:

```python
from subp2p.behavior import Notifications, NotifyHandler
from subp2p.events import ProtocolsData
from subp2p.messages import ProtocolRole

notifications = Notifications(
    ProtocolsData(genesis_hash=bytes(32), node_role=ProtocolRole.FULL_NODE)
)
handler = notifications.handle_established_outbound_connection(
    1, "peer-a", "/ip4/127.0.0.1/tcp/30333"
)
notifications.on_connection_established("peer-a", 1)
while (event := notifications.poll()) is not None:
    if isinstance(event, NotifyHandler):
        handler.on_behaviour_event(event.event)

# Inside a coroutine: the handler now asks for an outbound substream
# for each protocol.
# request = await handler.poll()
```

```python
from subp2p.ss58 import to_ss58

address = to_ss58(bytes(32), 42)
```

## What the package does not do

It does not open network connections by itself: there is no TCP, WebSocket,
Noise or Yamux stack, no Kademlia implementation, no ping or identify
protocol running, and no swarm that dispatches events. `DiscoveryConfig` and
`TransportConfig` only hold settings, and `PeerBehaviour` only records what
it is told. Decoding and verifying signed authority records from the DHT is
not included; only the key they are stored under is. There is no command
line tool.

## Running the tests

```
pip install -e ".[test]"
pytest
```