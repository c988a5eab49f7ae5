"""Stacks protocol primitives: addresses, Clarity values, keys and transactions."""

from .c32 import C32Error, c32_address, c32_address_decode, is_valid_stacks_address
from .clarity import ClarityError, ClarityType, ClarityValue, ContractCallError
from .keys import InvalidMnemonicError, StacksAccount, derive_account

__all__ = [
    "C32Error",
    "c32_address",
    "c32_address_decode",
    "is_valid_stacks_address",
    "ClarityError",
    "ClarityType",
    "ClarityValue",
    "ContractCallError",
    "InvalidMnemonicError",
    "StacksAccount",
    "derive_account",
]
