"""Deterministic Stacks account derivation from a BIP39 mnemonic."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache

from bip_utils import Bip32Slip10Secp256k1, Bip39MnemonicValidator, Bip39SeedGenerator

from .c32 import MAINNET_SINGLE_SIG, TESTNET_SINGLE_SIG, c32_address
from .hashing import hash160

# Account 0 of the Stacks wallet SDK derivation scheme
STX_DERIVATION_PATH = "m/44'/5757'/0'/0/0"


class InvalidMnemonicError(ValueError):
    """Raised when the configured mnemonic fails BIP39 validation."""


@dataclass(frozen=True)
class StacksAccount:
    address: str
    public_key: bytes
    private_key: bytes = field(repr=False)

    @property
    def key_hash(self) -> bytes:
        return hash160(self.public_key)


def address_from_public_key(public_key: bytes, mainnet: bool = True) -> str:
    version = MAINNET_SINGLE_SIG if mainnet else TESTNET_SINGLE_SIG
    return c32_address(version, hash160(public_key))


@lru_cache(maxsize=8)
def derive_account(mnemonic: str, mainnet: bool = True, passphrase: str = "") -> StacksAccount:
    """Derive the first wallet account; same mnemonic always yields the same account."""

    words = " ".join(mnemonic.split())
    if not Bip39MnemonicValidator().IsValid(words):
        raise InvalidMnemonicError("WALLET_MNEMONIC is not a valid BIP39 mnemonic.")

    seed = Bip39SeedGenerator(words).Generate(passphrase)
    node = Bip32Slip10Secp256k1.FromSeed(seed).DerivePath(STX_DERIVATION_PATH)

    private_key = node.PrivateKey().Raw().ToBytes()
    public_key = node.PublicKey().RawCompressed().ToBytes()
    return StacksAccount(
        address=address_from_public_key(public_key, mainnet=mainnet),
        public_key=public_key,
        private_key=private_key,
    )
