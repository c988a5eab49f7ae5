"""
c32check encoding for Stacks addresses.

A Stacks address is ``"S" + c32[version] + c32encode(hash160 + checksum)`` where
the checksum is the first four bytes of double-SHA256 over ``version || hash160``.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Tuple

from .hashing import double_sha256

C32_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

MAINNET_SINGLE_SIG = 22
MAINNET_MULTI_SIG = 20
TESTNET_SINGLE_SIG = 26
TESTNET_MULTI_SIG = 21

_C32_RE = re.compile(r"^[0123456789ABCDEFGHJKMNPQRSTVWXYZ]*$")


class C32Error(ValueError):
    """Raised for malformed c32 strings or checksum mismatches."""


def _normalize(text: str) -> str:
    return text.upper().replace("O", "0").replace("L", "1").replace("I", "1")


def c32encode(data: bytes) -> str:
    """Encode bytes as c32, keeping one ``0`` per leading zero byte."""

    leading_zeros = len(data) - len(data.lstrip(b"\x00"))
    number = int.from_bytes(data, "big")
    digits = []
    while number:
        number, remainder = divmod(number, 32)
        digits.append(C32_ALPHABET[remainder])
    return C32_ALPHABET[0] * leading_zeros + "".join(reversed(digits))


def c32decode(text: str) -> bytes:
    normalized = _normalize(text)
    if not _C32_RE.match(normalized):
        raise C32Error(f"Not a c32-encoded string: {text!r}")

    stripped = normalized.lstrip(C32_ALPHABET[0])
    leading_zeros = len(normalized) - len(stripped)
    number = 0
    for char in stripped:
        number = number * 32 + C32_ALPHABET.index(char)
    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * leading_zeros + body


def c32check_encode(version: int, data: bytes) -> str:
    if not 0 <= version < 32:
        raise C32Error(f"Invalid c32check version: {version}")
    checksum = double_sha256(bytes([version]) + data)[:4]
    return C32_ALPHABET[version] + c32encode(data + checksum)


def c32check_decode(text: str) -> Tuple[int, bytes]:
    normalized = _normalize(text)
    if len(normalized) < 2:
        raise C32Error(f"c32check string too short: {text!r}")

    version_char = normalized[0]
    if version_char not in C32_ALPHABET:
        raise C32Error(f"Invalid c32check version character: {version_char!r}")
    version = C32_ALPHABET.index(version_char)

    decoded = c32decode(normalized[1:])
    if len(decoded) < 4:
        raise C32Error(f"c32check string too short: {text!r}")
    data, checksum = decoded[:-4], decoded[-4:]
    if double_sha256(bytes([version]) + data)[:4] != checksum:
        raise C32Error(f"Invalid c32check checksum: {text!r}")
    return version, data


def c32_address(version: int, hash160: bytes) -> str:
    if len(hash160) != 20:
        raise C32Error("Address hash must be 20 bytes")
    return "S" + c32check_encode(version, hash160)


@lru_cache(maxsize=1024)
def c32_address_decode(address: str) -> Tuple[int, bytes]:
    """Return ``(version, hash160)`` for a Stacks address."""

    if not address or address[0] not in "Ss":
        raise C32Error(f"Stacks addresses start with 'S': {address!r}")
    version, data = c32check_decode(address[1:])
    if len(data) != 20:
        raise C32Error(f"Invalid address hash length in {address!r}")
    return version, data


def is_valid_stacks_address(address: str) -> bool:
    try:
        c32_address_decode(address)
    except C32Error:
        return False
    return True
