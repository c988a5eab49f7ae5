"""sBTC incentive program: enrollment, cycles and rewards.

Every value is read live from the incentive contract; enrollment is the only
operation here that submits a transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import httpx

from ..config import Settings
from ..providers.base import UpstreamResponseError
from ..providers.hiro import HiroProvider
from ..stacks.clarity import ClarityType, ClarityValue, principal_cv, to_python, uint_cv, unwrap_response
from ..stacks.keys import StacksAccount
from ..stacks.transactions import make_unsigned_contract_call, sign_transaction
from .amounts import SBTC_DECIMALS, format_amount, from_base_units

logger = logging.getLogger(__name__)


async def _read(
    hiro: HiroProvider,
    settings: Settings,
    function_name: str,
    args: list,
    sender: str,
) -> ClarityValue:
    result = await hiro.call_read_only(
        settings.sbtc_contract_address,
        settings.sbtc_contract_name,
        function_name,
        args,
        sender,
    )
    return unwrap_response(result)


def _as_bool(value: ClarityValue) -> bool:
    return value.type == ClarityType.BOOL_TRUE


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


async def is_sbtc_enrolled(address: str, *, hiro: HiroProvider, settings: Settings) -> Dict[str, Any]:
    """Enrollment for the current and the next cycle, checked independently."""

    current = _as_bool(await _read(hiro, settings, "is-enrolled-this-cycle", [principal_cv(address)], address))
    upcoming = _as_bool(await _read(hiro, settings, "is-enrolled-in-next-cycle", [principal_cv(address)], address))
    return {
        "address": address,
        "currentCycle": current,
        "nextCycle": upcoming,
        "formatted": (
            f"Enrolled for current cycle: {_yes_no(current)}, "
            f"Enrolled for next cycle: {_yes_no(upcoming)}"
        ),
    }


async def get_sbtc_current_cycle(sender: str, *, hiro: HiroProvider, settings: Settings) -> Dict[str, Any]:
    cycle_id = to_python(await _read(hiro, settings, "current-cycle-id", [], sender))
    if not isinstance(cycle_id, int) or isinstance(cycle_id, bool):
        raise UpstreamResponseError(f"Unexpected current-cycle-id result: {cycle_id!r}")
    return {
        "cycleId": cycle_id,
        "formatted": f"Current sBTC rewards cycle ID: {cycle_id}",
    }


async def get_sbtc_reward_address(address: str, *, hiro: HiroProvider, settings: Settings) -> Dict[str, Any]:
    reward_address = to_python(
        await _read(hiro, settings, "get-latest-reward-address", [principal_cv(address)], address)
    )
    if reward_address is None:
        formatted = f"No reward address is set for {address}"
    else:
        formatted = f"The reward address for {address} is {reward_address}"
    return {"address": address, "rewardAddress": reward_address, "formatted": formatted}


async def get_sbtc_rewards_by_cycle(
    cycle: int, address: str, *, hiro: HiroProvider, settings: Settings
) -> Dict[str, Any]:
    raw = to_python(
        await _read(
            hiro,
            settings,
            "reward-amount-for-cycle-and-address",
            [uint_cv(cycle), principal_cv(address)],
            address,
        )
    )
    rewards = from_base_units(raw or 0, SBTC_DECIMALS)
    return {
        "cycle": cycle,
        "address": address,
        "rewards": rewards,
        "formatted": f"sBTC rewards for cycle {cycle} and address {address}: {format_amount(rewards)} sBTC",
    }


async def enroll_sbtc_incentives(
    account: StacksAccount, *, hiro: HiroProvider, settings: Settings
) -> Dict[str, Any]:
    """Sign and broadcast ``enroll`` for the wallet's own address.

    The transaction carries no post-conditions. When fee estimation is
    unavailable the configured default fee is used.
    """

    nonce = await hiro.get_next_nonce(account.address)
    unsigned = make_unsigned_contract_call(
        contract_address=settings.sbtc_contract_address,
        contract_name=settings.sbtc_contract_name,
        function_name="enroll",
        function_args=[principal_cv(account.address)],
        public_key=account.public_key,
        nonce=nonce,
        fee=0,
        mainnet=settings.is_mainnet,
    )

    try:
        fee = await hiro.estimate_fee(
            unsigned.payload.serialize().hex(),
            len(unsigned.serialize()),
        )
    except (httpx.HTTPError, UpstreamResponseError, KeyError, TypeError, ValueError) as exc:
        logger.warning("Fee estimation failed, using default fee %s: %s", settings.default_tx_fee_ustx, exc)
        fee = settings.default_tx_fee_ustx

    signed = sign_transaction(unsigned.with_fee(fee), account.private_key)
    txid = await hiro.broadcast_transaction(signed.serialize())

    logger.info("Broadcast sBTC enrollment %s (nonce=%s, fee=%s)", txid, nonce, fee)
    return {
        "success": bool(txid),
        "txid": txid,
        "formatted": f"Successfully enrolled in sBTC incentives. Transaction ID: {txid}",
    }
