import pytest

from subp2p.p2p import get_peer_id, hash_authority_id

PEER = "12D3KooWExamplePeerIdentifier"


def test_get_peer_id_present():
    assert get_peer_id(f"/ip4/127.0.0.1/tcp/30333/p2p/{PEER}") == PEER


def test_get_peer_id_after_websocket():
    assert get_peer_id(f"/dns/node.example.com/tcp/443/wss/p2p/{PEER}") == PEER


def test_get_peer_id_ipfs_alias():
    assert get_peer_id(f"/ip4/10.0.0.1/tcp/1/ipfs/{PEER}") == PEER


def test_get_peer_id_absent():
    assert get_peer_id("/ip4/127.0.0.1/tcp/30333") is None


def test_get_peer_id_not_last():
    assert get_peer_id(f"/ip4/127.0.0.1/tcp/1/p2p/{PEER}/p2p-circuit") is None


def test_get_peer_id_invalid_address():
    with pytest.raises(ValueError):
        get_peer_id("ip4/127.0.0.1")


def test_hash_authority_id_empty():
    assert hash_authority_id(b"") == bytes.fromhex(
        "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    )


def test_hash_authority_id_properties():
    key = bytes(range(32))
    digest = hash_authority_id(key)
    assert len(digest) == 32
    assert hash_authority_id(bytearray(key)) == digest
    assert hash_authority_id(bytes(32)) != digest