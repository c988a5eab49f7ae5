"""
Contract-call transactions.

Builds, signs and serializes single-signature contract-call transactions in
the Stacks wire format. Signing is delegated to ``coincurve``; this module
only lays out bytes and computes signature hashes.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import List, Sequence

from coincurve import PrivateKey

from .c32 import c32_address_decode
from .clarity import ClarityValue, serialize as serialize_cv
from .hashing import hash160, sha512_256


class TransactionVersion(IntEnum):
    MAINNET = 0x00
    TESTNET = 0x80


class ChainId(IntEnum):
    MAINNET = 0x00000001
    TESTNET = 0x80000000


class AuthType(IntEnum):
    STANDARD = 0x04
    SPONSORED = 0x05


class AnchorMode(IntEnum):
    ON_CHAIN_ONLY = 0x01
    OFF_CHAIN_ONLY = 0x02
    ANY = 0x03


class PostConditionMode(IntEnum):
    ALLOW = 0x01
    DENY = 0x02


class PayloadType(IntEnum):
    TOKEN_TRANSFER = 0x00
    SMART_CONTRACT = 0x01
    CONTRACT_CALL = 0x02


HASH_MODE_P2PKH = 0x00
KEY_ENCODING_COMPRESSED = 0x00
EMPTY_SIGNATURE = bytes(65)
MAX_NAME_LENGTH = 128


class TransactionError(ValueError):
    """Raised for transactions that cannot be serialized or signed."""


def _encode_name(name: str) -> bytes:
    encoded = name.encode("ascii")
    if not encoded or len(encoded) > MAX_NAME_LENGTH:
        raise TransactionError(f"Invalid contract or function name: {name!r}")
    return bytes([len(encoded)]) + encoded


@dataclass(frozen=True)
class ContractCallPayload:
    contract_address: str
    contract_name: str
    function_name: str
    function_args: Sequence[ClarityValue] = ()

    def serialize(self) -> bytes:
        version, hash_bytes = c32_address_decode(self.contract_address)
        args = b"".join(serialize_cv(arg) for arg in self.function_args)
        return b"".join([
            bytes([PayloadType.CONTRACT_CALL]),
            bytes([version]),
            hash_bytes,
            _encode_name(self.contract_name),
            _encode_name(self.function_name),
            struct.pack(">I", len(self.function_args)),
            args,
        ])


@dataclass(frozen=True)
class SingleSigSpendingCondition:
    signer: bytes
    nonce: int
    fee: int
    signature: bytes = EMPTY_SIGNATURE
    hash_mode: int = HASH_MODE_P2PKH
    key_encoding: int = KEY_ENCODING_COMPRESSED

    def serialize(self) -> bytes:
        if len(self.signer) != 20:
            raise TransactionError("Signer hash must be 20 bytes")
        if len(self.signature) != 65:
            raise TransactionError("Recoverable signature must be 65 bytes")
        return b"".join([
            bytes([self.hash_mode]),
            self.signer,
            struct.pack(">Q", self.nonce),
            struct.pack(">Q", self.fee),
            bytes([self.key_encoding]),
            self.signature,
        ])

    def cleared(self) -> "SingleSigSpendingCondition":
        """The form hashed for the initial sighash: zero nonce, fee and signature."""

        return replace(self, nonce=0, fee=0, signature=EMPTY_SIGNATURE)


@dataclass(frozen=True)
class StacksTransaction:
    version: TransactionVersion
    chain_id: ChainId
    spending_condition: SingleSigSpendingCondition
    payload: ContractCallPayload
    auth_type: AuthType = AuthType.STANDARD
    anchor_mode: AnchorMode = AnchorMode.ANY
    post_condition_mode: PostConditionMode = PostConditionMode.DENY
    post_conditions: List[bytes] = field(default_factory=list)

    def serialize(self) -> bytes:
        return b"".join([
            bytes([self.version]),
            struct.pack(">I", self.chain_id),
            bytes([self.auth_type]),
            self.spending_condition.serialize(),
            bytes([self.anchor_mode]),
            bytes([self.post_condition_mode]),
            struct.pack(">I", len(self.post_conditions)),
            b"".join(self.post_conditions),
            self.payload.serialize(),
        ])

    def txid(self) -> str:
        return "0x" + sha512_256(self.serialize()).hex()

    def with_fee(self, fee: int) -> "StacksTransaction":
        return replace(self, spending_condition=replace(self.spending_condition, fee=fee))

    def initial_sighash(self) -> bytes:
        cleared = replace(self, spending_condition=self.spending_condition.cleared())
        return sha512_256(cleared.serialize())

    def presign_sighash(self) -> bytes:
        condition = self.spending_condition
        return sha512_256(
            self.initial_sighash()
            + bytes([self.auth_type])
            + struct.pack(">Q", condition.fee)
            + struct.pack(">Q", condition.nonce)
        )


def sign_transaction(transaction: StacksTransaction, private_key: bytes) -> StacksTransaction:
    """Return a copy of ``transaction`` carrying a recoverable signature in VRS order."""

    key = PrivateKey(private_key)
    if hash160(key.public_key.format(compressed=True)) != transaction.spending_condition.signer:
        raise TransactionError("Private key does not match the transaction signer")

    rsv = key.sign_recoverable(transaction.presign_sighash(), hasher=None)
    vrs = rsv[64:] + rsv[:64]
    return replace(
        transaction,
        spending_condition=replace(transaction.spending_condition, signature=vrs),
    )


def make_unsigned_contract_call(
    *,
    contract_address: str,
    contract_name: str,
    function_name: str,
    function_args: Sequence[ClarityValue],
    public_key: bytes,
    nonce: int,
    fee: int,
    mainnet: bool = True,
    post_condition_mode: PostConditionMode = PostConditionMode.DENY,
) -> StacksTransaction:
    payload = ContractCallPayload(
        contract_address=contract_address,
        contract_name=contract_name,
        function_name=function_name,
        function_args=tuple(function_args),
    )
    return StacksTransaction(
        version=TransactionVersion.MAINNET if mainnet else TransactionVersion.TESTNET,
        chain_id=ChainId.MAINNET if mainnet else ChainId.TESTNET,
        spending_condition=SingleSigSpendingCondition(
            signer=hash160(public_key),
            nonce=nonce,
            fee=fee,
        ),
        payload=payload,
        post_condition_mode=post_condition_mode,
    )
