"""Fixed-point amount helpers shared by the adapters."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional

STX_DECIMALS = 6
SBTC_DECIMALS = 8
FEE_RATE_DECIMALS = 8


def from_base_units(raw_value: Optional[object], decimals: int) -> Decimal:
    """Divide an on-chain integer amount by ``10**decimals`` exactly."""

    if raw_value in (None, ""):
        return Decimal("0")
    try:
        as_int = int(str(raw_value))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Not an integer amount: {raw_value!r}") from exc
    return (Decimal(as_int) / (Decimal(10) ** decimals)).normalize()


def format_amount(value: Decimal) -> str:
    """Plain decimal rendering without exponent or trailing zeros."""

    try:
        normalized = value.normalize()
    except InvalidOperation:
        return str(value)
    return f"{normalized:f}"
