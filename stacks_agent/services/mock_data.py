"""Canned wallet data served when the service runs in mock mode."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from ..providers.hiro import HiroProvider
from ..stacks.clarity import ClarityValue, ok_cv, string_ascii_cv, uint_cv
from .wallet import MOCK_WALLET_ADDRESS

MOCK_STX_BALANCE: Dict[str, Any] = {
    "balance": "2500750000",
    "locked": "500250000",
    "total_sent": "0",
    "total_received": "2500750000",
}

MOCK_FUNGIBLE_TOKENS: Dict[str, Dict[str, Any]] = {
    "SP102V8P0F7JX67ARQ77WEA3D3CFB5XW39REDT0AM.token-alex::alex": {"balance": "150000000"},
    "SP3DX3H4FEYZJZ586MFBS25ZW3HZDMEW92260R2PR.Wrapped-Bitcoin::wrapped-bitcoin": {"balance": "2500000"},
}

MOCK_TOKEN_METADATA: Dict[str, Dict[str, Any]] = {
    "SP102V8P0F7JX67ARQ77WEA3D3CFB5XW39REDT0AM.token-alex": {"decimals": 8, "symbol": "ALEX"},
    "SP3DX3H4FEYZJZ586MFBS25ZW3HZDMEW92260R2PR.Wrapped-Bitcoin": {"decimals": 8, "symbol": "xBTC"},
}

MOCK_TRANSACTIONS: List[Dict[str, Any]] = [
    {
        "tx": {
            "tx_id": f"0x{index:064x}",
            "sender_address": MOCK_WALLET_ADDRESS,
            "tx_status": "success",
            "burn_block_time_iso": f"2024-05-{index + 1:02d}T12:00:00.000Z",
        },
        "stx_sent": str(1_000_000 * (index + 1)),
        "stx_received": "0",
    }
    for index in range(12)
]


class MockHiroProvider(HiroProvider):
    """Hiro client whose wallet lookups return canned data.

    Contract reads other than token metadata still go to the configured node.
    """

    name = "hiro-mock"

    async def ready(self) -> bool:
        return True

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "mode": "mock"}

    async def get_stx_balance(self, address: str) -> Dict[str, Any]:
        return dict(MOCK_STX_BALANCE)

    async def get_fungible_tokens(self, address: str) -> Dict[str, Dict[str, Any]]:
        return {key: dict(value) for key, value in MOCK_FUNGIBLE_TOKENS.items()}

    async def get_transactions(self, address: str, limit: int = 10) -> List[Dict[str, Any]]:
        return [dict(entry) for entry in MOCK_TRANSACTIONS[:limit]]

    async def call_read_only(
        self,
        contract_address: str,
        contract_name: str,
        function_name: str,
        function_args: Sequence[ClarityValue],
        sender: str,
    ) -> ClarityValue:
        metadata = MOCK_TOKEN_METADATA.get(f"{contract_address}.{contract_name}")
        if metadata is not None and function_name == "get-decimals":
            return ok_cv(uint_cv(metadata["decimals"]))
        if metadata is not None and function_name == "get-symbol":
            return ok_cv(string_ascii_cv(metadata["symbol"]))
        return await super().call_read_only(
            contract_address, contract_name, function_name, function_args, sender
        )
