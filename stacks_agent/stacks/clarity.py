"""
Clarity value wire format.

Read-only contract calls exchange arguments and results as hex-encoded,
consensus-serialized Clarity values. This module builds, serializes and
parses them and converts results into plain Python values.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from .c32 import c32_address, c32_address_decode


class ClarityType(IntEnum):
    INT = 0x00
    UINT = 0x01
    BUFFER = 0x02
    BOOL_TRUE = 0x03
    BOOL_FALSE = 0x04
    PRINCIPAL_STANDARD = 0x05
    PRINCIPAL_CONTRACT = 0x06
    RESPONSE_OK = 0x07
    RESPONSE_ERR = 0x08
    OPTIONAL_NONE = 0x09
    OPTIONAL_SOME = 0x0A
    LIST = 0x0B
    TUPLE = 0x0C
    STRING_ASCII = 0x0D
    STRING_UTF8 = 0x0E


class ClarityError(ValueError):
    """Raised for values that cannot be serialized or parsed."""


class ContractCallError(RuntimeError):
    """Raised when a contract call returns ``(err ...)`` or cannot be evaluated."""


@dataclass(frozen=True)
class ClarityValue:
    type: ClarityType
    value: Any = None

    @property
    def is_response(self) -> bool:
        return self.type in (ClarityType.RESPONSE_OK, ClarityType.RESPONSE_ERR)

    @property
    def is_bool(self) -> bool:
        return self.type in (ClarityType.BOOL_TRUE, ClarityType.BOOL_FALSE)


_INT128_MIN = -(1 << 127)
_INT128_MAX = (1 << 127) - 1
_UINT128_MAX = (1 << 128) - 1
_MAX_NAME_LENGTH = 128


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------

def int_cv(value: int) -> ClarityValue:
    if not _INT128_MIN <= value <= _INT128_MAX:
        raise ClarityError(f"int out of 128-bit range: {value}")
    return ClarityValue(ClarityType.INT, int(value))


def uint_cv(value: int) -> ClarityValue:
    if not 0 <= value <= _UINT128_MAX:
        raise ClarityError(f"uint out of 128-bit range: {value}")
    return ClarityValue(ClarityType.UINT, int(value))


def bool_cv(value: bool) -> ClarityValue:
    return ClarityValue(ClarityType.BOOL_TRUE if value else ClarityType.BOOL_FALSE, bool(value))


def buffer_cv(value: bytes) -> ClarityValue:
    return ClarityValue(ClarityType.BUFFER, bytes(value))


def string_ascii_cv(value: str) -> ClarityValue:
    try:
        value.encode("ascii")
    except UnicodeEncodeError as exc:
        raise ClarityError(f"Not an ASCII string: {value!r}") from exc
    return ClarityValue(ClarityType.STRING_ASCII, value)


def string_utf8_cv(value: str) -> ClarityValue:
    return ClarityValue(ClarityType.STRING_UTF8, value)


def principal_cv(principal: str) -> ClarityValue:
    """Standard principal (``SP...``) or contract principal (``SP....name``)."""

    if "." in principal:
        address, contract_name = principal.split(".", 1)
        c32_address_decode(address)
        _check_name(contract_name)
        return ClarityValue(ClarityType.PRINCIPAL_CONTRACT, principal)
    c32_address_decode(principal)
    return ClarityValue(ClarityType.PRINCIPAL_STANDARD, principal)


def none_cv() -> ClarityValue:
    return ClarityValue(ClarityType.OPTIONAL_NONE)


def some_cv(value: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.OPTIONAL_SOME, value)


def ok_cv(value: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.RESPONSE_OK, value)


def err_cv(value: ClarityValue) -> ClarityValue:
    return ClarityValue(ClarityType.RESPONSE_ERR, value)


def list_cv(values: Sequence[ClarityValue]) -> ClarityValue:
    return ClarityValue(ClarityType.LIST, tuple(values))


def tuple_cv(fields: Mapping[str, ClarityValue]) -> ClarityValue:
    for name in fields:
        _check_name(name)
    return ClarityValue(ClarityType.TUPLE, dict(sorted(fields.items())))


def _check_name(name: str) -> None:
    if not name or len(name) > _MAX_NAME_LENGTH:
        raise ClarityError(f"Invalid Clarity name: {name!r}")
    try:
        name.encode("ascii")
    except UnicodeEncodeError as exc:
        raise ClarityError(f"Invalid Clarity name: {name!r}") from exc


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _serialize_address(address: str) -> bytes:
    version, hash_bytes = c32_address_decode(address)
    return bytes([version]) + hash_bytes


def _serialize_name(name: str) -> bytes:
    encoded = name.encode("ascii")
    return bytes([len(encoded)]) + encoded


def serialize(cv: ClarityValue) -> bytes:
    prefix = bytes([cv.type])
    kind = cv.type

    if kind == ClarityType.INT:
        return prefix + cv.value.to_bytes(16, "big", signed=True)
    if kind == ClarityType.UINT:
        return prefix + cv.value.to_bytes(16, "big")
    if kind == ClarityType.BUFFER:
        return prefix + struct.pack(">I", len(cv.value)) + cv.value
    if kind in (ClarityType.BOOL_TRUE, ClarityType.BOOL_FALSE, ClarityType.OPTIONAL_NONE):
        return prefix
    if kind == ClarityType.PRINCIPAL_STANDARD:
        return prefix + _serialize_address(cv.value)
    if kind == ClarityType.PRINCIPAL_CONTRACT:
        address, contract_name = cv.value.split(".", 1)
        return prefix + _serialize_address(address) + _serialize_name(contract_name)
    if kind in (ClarityType.RESPONSE_OK, ClarityType.RESPONSE_ERR, ClarityType.OPTIONAL_SOME):
        return prefix + serialize(cv.value)
    if kind == ClarityType.LIST:
        return prefix + struct.pack(">I", len(cv.value)) + b"".join(serialize(item) for item in cv.value)
    if kind == ClarityType.TUPLE:
        body = b"".join(_serialize_name(name) + serialize(value) for name, value in cv.value.items())
        return prefix + struct.pack(">I", len(cv.value)) + body
    if kind == ClarityType.STRING_ASCII:
        encoded = cv.value.encode("ascii")
        return prefix + struct.pack(">I", len(encoded)) + encoded
    if kind == ClarityType.STRING_UTF8:
        encoded = cv.value.encode("utf-8")
        return prefix + struct.pack(">I", len(encoded)) + encoded

    raise ClarityError(f"Unsupported Clarity type: {kind!r}")


def to_hex(cv: ClarityValue) -> str:
    return "0x" + serialize(cv).hex()


# ---------------------------------------------------------------------------
# Deserialization
# ---------------------------------------------------------------------------

class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def read(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise ClarityError("Unexpected end of Clarity value")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def read_u8(self) -> int:
        return self.read(1)[0]

    def read_u32(self) -> int:
        return struct.unpack(">I", self.read(4))[0]


def _read_address(reader: _Reader) -> str:
    version = reader.read_u8()
    return c32_address(version, reader.read(20))


def _read_name(reader: _Reader) -> str:
    length = reader.read_u8()
    return reader.read(length).decode("ascii")


def _read_value(reader: _Reader) -> ClarityValue:
    try:
        kind = ClarityType(reader.read_u8())
    except ValueError as exc:
        raise ClarityError(f"Unknown Clarity type prefix: {exc}") from exc

    if kind == ClarityType.INT:
        return ClarityValue(kind, int.from_bytes(reader.read(16), "big", signed=True))
    if kind == ClarityType.UINT:
        return ClarityValue(kind, int.from_bytes(reader.read(16), "big"))
    if kind == ClarityType.BUFFER:
        return ClarityValue(kind, reader.read(reader.read_u32()))
    if kind == ClarityType.BOOL_TRUE:
        return ClarityValue(kind, True)
    if kind == ClarityType.BOOL_FALSE:
        return ClarityValue(kind, False)
    if kind == ClarityType.OPTIONAL_NONE:
        return ClarityValue(kind)
    if kind == ClarityType.PRINCIPAL_STANDARD:
        return ClarityValue(kind, _read_address(reader))
    if kind == ClarityType.PRINCIPAL_CONTRACT:
        address = _read_address(reader)
        return ClarityValue(kind, f"{address}.{_read_name(reader)}")
    if kind in (ClarityType.RESPONSE_OK, ClarityType.RESPONSE_ERR, ClarityType.OPTIONAL_SOME):
        return ClarityValue(kind, _read_value(reader))
    if kind == ClarityType.LIST:
        count = reader.read_u32()
        return ClarityValue(kind, tuple(_read_value(reader) for _ in range(count)))
    if kind == ClarityType.TUPLE:
        count = reader.read_u32()
        fields: Dict[str, ClarityValue] = {}
        for _ in range(count):
            name = _read_name(reader)
            fields[name] = _read_value(reader)
        return ClarityValue(kind, fields)
    if kind == ClarityType.STRING_ASCII:
        return ClarityValue(kind, reader.read(reader.read_u32()).decode("ascii"))
    # STRING_UTF8
    return ClarityValue(kind, reader.read(reader.read_u32()).decode("utf-8"))


def deserialize(data: bytes) -> ClarityValue:
    reader = _Reader(data)
    value = _read_value(reader)
    if reader.offset != len(data):
        raise ClarityError("Trailing bytes after Clarity value")
    return value


def from_hex(value: str) -> ClarityValue:
    text = value[2:] if value.startswith("0x") else value
    try:
        raw = bytes.fromhex(text)
    except ValueError as exc:
        raise ClarityError(f"Invalid hex Clarity value: {value!r}") from exc
    return deserialize(raw)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def unwrap_response(cv: ClarityValue) -> ClarityValue:
    """Return the inner value of ``(ok ...)``; raise on ``(err ...)``.

    Values that are not responses are returned unchanged.
    """

    if cv.type == ClarityType.RESPONSE_OK:
        return cv.value
    if cv.type == ClarityType.RESPONSE_ERR:
        raise ContractCallError(f"Contract returned an error: {to_python(cv.value)!r}")
    return cv


def to_python(cv: Optional[ClarityValue]) -> Any:
    """Convert a Clarity value to plain Python data.

    Optionals become ``None`` or their inner value; responses become
    ``{"ok": ...}`` / ``{"err": ...}``; buffers become ``0x`` hex strings.
    """

    if cv is None:
        return None
    kind = cv.type
    if kind in (ClarityType.INT, ClarityType.UINT, ClarityType.BOOL_TRUE, ClarityType.BOOL_FALSE,
                ClarityType.PRINCIPAL_STANDARD, ClarityType.PRINCIPAL_CONTRACT,
                ClarityType.STRING_ASCII, ClarityType.STRING_UTF8):
        return cv.value
    if kind == ClarityType.BUFFER:
        return "0x" + cv.value.hex()
    if kind == ClarityType.OPTIONAL_NONE:
        return None
    if kind == ClarityType.OPTIONAL_SOME:
        return to_python(cv.value)
    if kind == ClarityType.RESPONSE_OK:
        return {"ok": to_python(cv.value)}
    if kind == ClarityType.RESPONSE_ERR:
        return {"err": to_python(cv.value)}
    if kind == ClarityType.LIST:
        return [to_python(item) for item in cv.value]
    return {name: to_python(value) for name, value in cv.value.items()}


def split_contract_id(contract_id: str) -> Tuple[str, str]:
    """Split ``ADDRESS.contract-name`` into its two parts."""

    if "." not in contract_id:
        raise ClarityError(f"Not a contract identifier: {contract_id!r}")
    address, name = contract_id.split(".", 1)
    return address, name


__all__ = [
    "ClarityType",
    "ClarityValue",
    "ClarityError",
    "ContractCallError",
    "int_cv",
    "uint_cv",
    "bool_cv",
    "buffer_cv",
    "string_ascii_cv",
    "string_utf8_cv",
    "principal_cv",
    "none_cv",
    "some_cv",
    "ok_cv",
    "err_cv",
    "list_cv",
    "tuple_cv",
    "serialize",
    "deserialize",
    "to_hex",
    "from_hex",
    "unwrap_response",
    "to_python",
    "split_contract_id",
]
