"""SS58 address encoding of sr25519 public keys."""

from __future__ import annotations

import hashlib

_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_PREFIX = b"SS58PRE"
_PUBLIC_KEY_LENGTH = 32


def b58encode(data: bytes) -> str:
    """Encode bytes with the Bitcoin base58 alphabet."""
    data = bytes(data)
    stripped = data.lstrip(b"\x00")
    leading_zeros = len(data) - len(stripped)
    number = int.from_bytes(stripped, "big")
    digits = []
    while number:
        number, remainder = divmod(number, 58)
        digits.append(_ALPHABET[remainder])
    return "1" * leading_zeros + "".join(reversed(digits))


def ss58hash(data: bytes) -> bytes:
    """Blake2b-512 of the SS58 prefix followed by ``data``."""
    return hashlib.blake2b(_PREFIX + bytes(data), digest_size=64).digest()


def to_ss58(key: bytes, version: int) -> str:
    """Encode a 32-byte public key as an SS58 address for the network ``version``."""
    key = bytes(key)
    if len(key) != _PUBLIC_KEY_LENGTH:
        raise ValueError(f"Public key must be {_PUBLIC_KEY_LENGTH} bytes, got {len(key)}")
    if not 0 <= version <= 0xFFFF:
        raise ValueError("version must fit in 16 bits")

    # Only 14 bits of the identifier are supported.
    ident = version & 0b0011_1111_1111_1111
    if ident < 64:
        prefix = bytes([ident])
    else:
        first = (ident & 0b1111_1100) >> 2
        second = (ident >> 8) | ((ident & 0b11) << 6)
        prefix = bytes([first | 0b0100_0000, second])

    payload = prefix + key
    return b58encode(payload + ss58hash(payload)[:2])