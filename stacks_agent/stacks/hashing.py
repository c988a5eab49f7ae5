"""Hash functions used by Stacks addresses and transactions."""

from __future__ import annotations

import hashlib

from Crypto.Hash import RIPEMD160, SHA512


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def double_sha256(data: bytes) -> bytes:
    return sha256(sha256(data))


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data)), the 20-byte key hash inside every address."""

    return RIPEMD160.new(sha256(data)).digest()


def sha512_256(data: bytes) -> bytes:
    """SHA-512/256, used for transaction ids and signature hashes."""

    return SHA512.new(data, truncate="256").digest()
