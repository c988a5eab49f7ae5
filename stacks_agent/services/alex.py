"""ALEX swap fee rates, swappable tokens and prices."""

from __future__ import annotations

from typing import Any, Dict

from ..config import Settings
from ..providers.alex import AlexProvider
from ..providers.base import UpstreamResponseError
from ..providers.hiro import HiroProvider
from ..stacks.clarity import principal_cv, to_python, uint_cv, unwrap_response
from .amounts import FEE_RATE_DECIMALS, format_amount, from_base_units

# Pool factor of the STX/ALEX pair on the AMM contract
POOL_FACTOR = 10**8


async def get_alex_fee_rates(*, hiro: HiroProvider, settings: Settings) -> Dict[str, Any]:
    """Swap fee rates of the STX/ALEX pool, read from the AMM contract."""

    result = await hiro.call_read_only(
        settings.alex_amm_contract_address,
        settings.alex_amm_contract_name,
        "get-pool-details",
        [
            principal_cv(settings.alex_stx_token),
            principal_cv(settings.alex_alex_token),
            uint_cv(POOL_FACTOR),
        ],
        settings.alex_amm_contract_address,
    )
    details = to_python(unwrap_response(result))
    if not isinstance(details, dict) or "fee-rate-x" not in details or "fee-rate-y" not in details:
        raise UpstreamResponseError("Unexpected pool details returned by the ALEX AMM contract")

    stx_to_alex = from_base_units(details["fee-rate-x"], FEE_RATE_DECIMALS)
    alex_to_stx = from_base_units(details["fee-rate-y"], FEE_RATE_DECIMALS)
    return {
        "stxToAlexFee": stx_to_alex,
        "alexToStxFee": alex_to_stx,
        "formatted": (
            f"Fee rate from STX to ALEX: {format_amount(stx_to_alex)} STX\n"
            f"Fee rate from ALEX to STX: {format_amount(alex_to_stx)} ALEX"
        ),
    }


async def get_alex_available_tokens(*, alex: AlexProvider) -> Dict[str, Any]:
    entries = await alex.get_token_list()
    tokens = [
        {
            "name": entry.get("name") or entry.get("symbol"),
            "id": entry.get("underlyingToken") or entry.get("contractAddress") or entry.get("id"),
        }
        for entry in entries
    ]
    formatted = "\n".join(f"Name: {t['name']}, Id: {t['id']}" for t in tokens) or "No ALEX tokens found"
    return {"tokens": tokens, "formatted": formatted}


async def get_alex_token_prices(*, alex: AlexProvider) -> Dict[str, Any]:
    latest = await alex.get_token_prices()
    prices = [{"token": token, "price": price} for token, price in latest.items()]
    formatted = (
        "\n".join(f"Token: {p['token']}, Price: {p['price']} USD" for p in prices)
        or "No ALEX token prices available"
    )
    return {"prices": prices, "formatted": formatted}
