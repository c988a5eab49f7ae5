import pytest

from stacks_agent.stacks.c32 import (
    MAINNET_SINGLE_SIG,
    TESTNET_SINGLE_SIG,
    C32Error,
    c32_address,
    c32_address_decode,
    c32check_decode,
    c32check_encode,
    c32decode,
    c32encode,
    is_valid_stacks_address,
)

KEY_HASH = bytes.fromhex("a46ff88886c2ef9762d970b4d2c63678835bd39d")
MAINNET_ADDRESS = "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7"


def test_c32encode_known_vector():
    assert c32encode(KEY_HASH) == "MHQZH246RBQSERPSE2TD5HHPF21NQMWX"
    assert c32decode("MHQZH246RBQSERPSE2TD5HHPF21NQMWX") == KEY_HASH


def test_leading_zero_bytes_survive_encoding():
    data = b"\x00\x00\x01\x02"
    encoded = c32encode(data)

    assert encoded.startswith("00")
    assert c32decode(encoded) == data


def test_mainnet_address_from_key_hash():
    assert c32_address(MAINNET_SINGLE_SIG, KEY_HASH) == MAINNET_ADDRESS
    assert c32_address_decode(MAINNET_ADDRESS) == (MAINNET_SINGLE_SIG, KEY_HASH)


def test_testnet_address_round_trips():
    address = c32_address(TESTNET_SINGLE_SIG, KEY_HASH)

    assert address.startswith("ST")
    assert c32_address_decode(address) == (TESTNET_SINGLE_SIG, KEY_HASH)


def test_decode_accepts_lowercase_and_lookalike_characters():
    version, data = c32check_decode(c32check_encode(3, b"\x01\x02\x03").lower())

    assert version == 3
    assert data == b"\x01\x02\x03"


def test_checksum_mismatch_is_rejected():
    tampered = MAINNET_ADDRESS[:-1] + ("8" if MAINNET_ADDRESS[-1] != "8" else "9")

    with pytest.raises(C32Error):
        c32_address_decode(tampered)
    assert not is_valid_stacks_address(tampered)


@pytest.mark.parametrize("candidate", ["", "0x1234", "hello", "SP!!", "SP2J6ZY48GV1"])
def test_invalid_addresses(candidate):
    assert not is_valid_stacks_address(candidate)


def test_address_requires_twenty_byte_hash():
    with pytest.raises(C32Error):
        c32_address(MAINNET_SINGLE_SIG, b"\x01" * 19)
