"""Wallet lookups against the Hiro indexer: address, balances and activity."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..config import ConfigurationError, Settings
from ..providers.base import UpstreamResponseError
from ..providers.hiro import HiroProvider
from ..stacks.clarity import ClarityError, ContractCallError, split_contract_id, to_python, unwrap_response
from ..stacks.keys import InvalidMnemonicError, StacksAccount, derive_account
from .amounts import STX_DECIMALS, format_amount, from_base_units

logger = logging.getLogger(__name__)

# Canned wallet served in mock mode
MOCK_WALLET_ADDRESS = "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7"

DEFAULT_TRANSACTION_LIMIT = 10

_METADATA_ERRORS = (
    httpx.HTTPError,
    UpstreamResponseError,
    ContractCallError,
    ClarityError,
    ValueError,
)


class WalletConfigurationError(ConfigurationError):
    """Raised when no wallet can be resolved for the request."""


@dataclass(frozen=True)
class WalletContext:
    address: str
    account: Optional[StacksAccount] = None
    mock: bool = False

    def require_account(self) -> StacksAccount:
        if self.account is None:
            raise WalletConfigurationError(
                "Signing requires WALLET_MNEMONIC; no signing key is available in mock mode."
            )
        return self.account


def resolve_wallet(settings: Settings) -> WalletContext:
    """Resolve the connected wallet for this deployment.

    Mock mode always answers with the canned address. Otherwise the mnemonic
    is mandatory and the account is derived from it (memoized per mnemonic).
    """

    if settings.mock_mode:
        return WalletContext(address=MOCK_WALLET_ADDRESS, mock=True)

    if not settings.has_wallet_mnemonic:
        raise WalletConfigurationError("WALLET_MNEMONIC environment variable is not set.")

    try:
        account = derive_account(settings.wallet_mnemonic, mainnet=settings.is_mainnet)
    except InvalidMnemonicError as exc:
        raise WalletConfigurationError(str(exc)) from exc
    return WalletContext(address=account.address, account=account)


async def get_stx_balance(address: str, *, hiro: HiroProvider) -> Dict[str, Any]:
    data = await hiro.get_stx_balance(address)

    total = from_base_units(data.get("balance"), STX_DECIMALS)
    locked = from_base_units(data.get("locked"), STX_DECIMALS)
    available = total - locked

    return {
        "address": address,
        "total": total,
        "locked": locked,
        "available": available,
        "formatted": (
            f"Total: {format_amount(total)} STX, "
            f"Locked: {format_amount(locked)} STX, "
            f"Available: {format_amount(available)} STX"
        ),
    }


async def _read_token_metadata(hiro: HiroProvider, contract_id: str, sender: str) -> Tuple[int, str]:
    contract_address, contract_name = split_contract_id(contract_id)
    decimals_cv, symbol_cv = await asyncio.gather(
        hiro.call_read_only(contract_address, contract_name, "get-decimals", [], sender),
        hiro.call_read_only(contract_address, contract_name, "get-symbol", [], sender),
    )
    decimals = to_python(unwrap_response(decimals_cv))
    symbol = to_python(unwrap_response(symbol_cv))
    if not isinstance(decimals, int) or isinstance(decimals, bool):
        raise ValueError(f"get-decimals returned {decimals!r}")
    return decimals, str(symbol)


async def _token_entry(
    hiro: HiroProvider, asset_id: str, record: Dict[str, Any], sender: str
) -> Optional[Dict[str, Any]]:
    contract_id = asset_id.split("::", 1)[0]
    try:
        decimals, symbol = await _read_token_metadata(hiro, contract_id, sender)
        balance = from_base_units(record.get("balance"), decimals)
    except _METADATA_ERRORS as exc:
        logger.warning("Skipping token %s: metadata lookup failed: %s", contract_id, exc)
        return None

    return {
        "symbol": symbol,
        "balance": balance,
        "contractId": contract_id,
        "decimals": decimals,
    }


async def get_token_balances(address: str, *, hiro: HiroProvider) -> Dict[str, Any]:
    """Fungible token balances; a token whose metadata cannot be read is left out."""

    fungible = await hiro.get_fungible_tokens(address)
    entries = await asyncio.gather(
        *(_token_entry(hiro, asset_id, record or {}, address) for asset_id, record in fungible.items())
    )
    tokens = [entry for entry in entries if entry is not None]

    if tokens:
        formatted = "\n".join(
            f"Token: {t['symbol']}, Balance: {format_amount(t['balance'])}, Token Id: {t['contractId']}"
            for t in tokens
        )
    else:
        formatted = f"No fungible token balances found for {address}"

    return {"address": address, "tokens": tokens, "formatted": formatted}


def _stx_amount(entry: Dict[str, Any], tx: Dict[str, Any], field: str):
    raw = entry.get(field)
    if raw is None:
        raw = tx.get(field)
    return from_base_units(raw, STX_DECIMALS)


async def get_recent_transactions(
    address: str,
    limit: int = DEFAULT_TRANSACTION_LIMIT,
    *,
    hiro: HiroProvider,
) -> Dict[str, Any]:
    results = await hiro.get_transactions(address, limit=limit)

    transactions: List[Dict[str, Any]] = []
    for entry in results[:limit]:
        tx = entry.get("tx") if isinstance(entry.get("tx"), dict) else entry
        transactions.append(
            {
                "id": tx.get("tx_id"),
                "from": tx.get("sender_address"),
                "status": tx.get("tx_status"),
                "stxSent": _stx_amount(entry, tx, "stx_sent"),
                "stxReceived": _stx_amount(entry, tx, "stx_received"),
                "time": tx.get("burn_block_time_iso"),
            }
        )

    if transactions:
        formatted = "\n".join(
            f"Id: {t['id']}, From: {t['from']}, Status: {t['status']}, "
            f"STX Sent: {format_amount(t['stxSent'])}, STX Received: {format_amount(t['stxReceived'])}"
            for t in transactions
        )
    else:
        formatted = f"No recent transactions found for {address}"

    return {"address": address, "transactions": transactions, "formatted": formatted}
