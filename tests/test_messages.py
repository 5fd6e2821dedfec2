import pytest

from subp2p.messages import (
    BlockAnnouncesHandshake,
    DecodeError,
    ProtocolRole,
    decode_role,
)

GENESIS = bytes(range(32))


def test_protocol_roles():
    assert ProtocolRole.FULL_NODE.encoded() == 1
    assert ProtocolRole.LIGHT_NODE.encoded() == 2
    assert ProtocolRole.AUTHORITY.encoded() == 4


@pytest.mark.parametrize("role", list(ProtocolRole))
def test_role_round_trip(role):
    encoded = role.encode()
    assert len(encoded) == 1
    assert decode_role(encoded) is role


def test_decode_role_invalid_byte():
    with pytest.raises(DecodeError):
        decode_role(b"\x03")


def test_decode_role_empty():
    with pytest.raises(DecodeError):
        decode_role(b"")


def test_from_genesis_fields():
    handshake = BlockAnnouncesHandshake.from_genesis(GENESIS)
    assert handshake.roles == 4
    assert handshake.best_number == 0
    assert handshake.best_hash == GENESIS
    assert handshake.genesis_hash == GENESIS


def test_encode_layout():
    encoded = BlockAnnouncesHandshake.from_genesis(GENESIS).encode()
    assert len(encoded) == 1 + 4 + 32 + 32
    assert encoded[0] == 4
    assert encoded[1:5] == b"\x00\x00\x00\x00"
    assert encoded[5:37] == GENESIS
    assert encoded[37:] == GENESIS


def test_encode_best_number_little_endian():
    handshake = BlockAnnouncesHandshake(
        roles=1, best_number=1, best_hash=GENESIS, genesis_hash=GENESIS
    )
    assert handshake.encode()[1:5] == b"\x01\x00\x00\x00"


def test_round_trip():
    original = BlockAnnouncesHandshake(
        roles=2, best_number=123456, best_hash=bytes(32), genesis_hash=GENESIS
    )
    assert BlockAnnouncesHandshake.decode(original.encode()) == original


def test_decode_too_short():
    encoded = BlockAnnouncesHandshake.from_genesis(GENESIS).encode()
    with pytest.raises(DecodeError):
        BlockAnnouncesHandshake.decode(encoded[:-1])


def test_from_hex_genesis_with_and_without_prefix():
    plain = BlockAnnouncesHandshake.from_hex_genesis(GENESIS.hex())
    prefixed = BlockAnnouncesHandshake.from_hex_genesis("0x" + GENESIS.hex())
    assert plain == prefixed == BlockAnnouncesHandshake.from_genesis(GENESIS)


@pytest.mark.parametrize("text", ["0xzz" + "00" * 31, "0x" + "0" * 63, "0x" + "00" * 31])
def test_from_hex_genesis_invalid(text):
    with pytest.raises(DecodeError):
        BlockAnnouncesHandshake.from_hex_genesis(text)


def test_wrong_hash_length_rejected():
    with pytest.raises(ValueError):
        BlockAnnouncesHandshake.from_genesis(b"\x00" * 31)


def test_best_number_out_of_range():
    with pytest.raises(ValueError):
        BlockAnnouncesHandshake(
            roles=4, best_number=2**32, best_hash=GENESIS, genesis_hash=GENESIS
        )