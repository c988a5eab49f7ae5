from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config import settings
from ..stacks.clarity import ClarityError, ClarityValue, ContractCallError, from_hex, to_hex
from .base import Provider, UpstreamResponseError


class BroadcastError(RuntimeError):
    """Raised when the node rejects a transaction."""


class HiroProvider(Provider):
    """Hiro Stacks API provider: indexer lookups, read-only calls and broadcasts"""

    name = "hiro"
    timeout_s = 30

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(transport=transport)
        self.api_key = settings.hiro_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.hiro_base_url).rstrip("/")
        self.timeout_s = settings.request_timeout_seconds

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def ready(self) -> bool:
        return True  # API key is optional for the public tier

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/extended/v1/status",
                    headers=self._build_headers(),
                )
                response.raise_for_status()
                return {"status": "healthy", "latency_ms": int(response.elapsed.total_seconds() * 1000)}
        except Exception as e:
            return {"status": "error", "reason": str(e)}

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        async with self._client() as client:
            response = await client.get(
                f"{self.base_url}{path}",
                headers=self._build_headers(),
                params=params,
            )
            response.raise_for_status()
            return response.json()

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Any:
        async with self._client() as client:
            response = await client.post(
                f"{self.base_url}{path}",
                headers=self._build_headers(),
                json=payload,
            )
            response.raise_for_status()
            return response.json()

    # ------------------------------------------------------------------
    # Indexer
    # ------------------------------------------------------------------

    async def get_stx_balance(self, address: str) -> Dict[str, Any]:
        """Raw micro-STX balance record (``balance``, ``locked``...)"""
        data = await self._get_json(f"/extended/v1/address/{address}/stx")
        if not isinstance(data, dict) or "balance" not in data:
            raise UpstreamResponseError("Unexpected response format from Hiro balance endpoint")
        return data

    async def get_fungible_tokens(self, address: str) -> Dict[str, Dict[str, Any]]:
        """Fungible token balances keyed by ``ADDRESS.contract::asset``"""
        data = await self._get_json(f"/extended/v1/address/{address}/balances")
        if not isinstance(data, dict):
            raise UpstreamResponseError("Unexpected response format from Hiro balances endpoint")
        tokens = data.get("fungible_tokens") or {}
        if not isinstance(tokens, dict):
            raise UpstreamResponseError("Unexpected fungible_tokens format from Hiro balances endpoint")
        return tokens

    async def get_transactions(self, address: str, limit: int = 10) -> List[Dict[str, Any]]:
        data = await self._get_json(
            f"/extended/v2/addresses/{address}/transactions",
            params={"limit": limit},
        )
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise UpstreamResponseError("Unexpected response format from Hiro transactions endpoint")
        return results

    async def get_next_nonce(self, address: str) -> int:
        data = await self._get_json(f"/extended/v1/address/{address}/nonces")
        try:
            return int(data["possible_next_nonce"])
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamResponseError("Unexpected response format from Hiro nonces endpoint") from exc

    # ------------------------------------------------------------------
    # Node RPC
    # ------------------------------------------------------------------

    async def call_read_only(
        self,
        contract_address: str,
        contract_name: str,
        function_name: str,
        function_args: Sequence[ClarityValue],
        sender: str,
    ) -> ClarityValue:
        """Evaluate a read-only function and return the decoded Clarity result."""
        data = await self._post_json(
            f"/v2/contracts/call-read/{contract_address}/{contract_name}/{function_name}",
            {"sender": sender, "arguments": [to_hex(arg) for arg in function_args]},
        )
        if not isinstance(data, dict):
            raise UpstreamResponseError("Unexpected response format from read-only call")
        if not data.get("okay"):
            cause = data.get("cause") or "unknown cause"
            raise ContractCallError(
                f"Read-only call {contract_address}.{contract_name}::{function_name} failed: {cause}"
            )
        try:
            return from_hex(data["result"])
        except (KeyError, ClarityError) as exc:
            raise UpstreamResponseError(f"Could not decode read-only result: {exc}") from exc

    async def estimate_fee(self, payload_hex: str, estimated_len: int) -> int:
        data = await self._post_json(
            "/v2/fees/transaction",
            {"transaction_payload": payload_hex, "estimated_len": estimated_len},
        )
        estimations = data.get("estimations") if isinstance(data, dict) else None
        if not estimations:
            raise UpstreamResponseError("Fee estimation returned no estimates")
        middle = estimations[1] if len(estimations) > 1 else estimations[0]
        return int(middle["fee"])

    async def broadcast_transaction(self, raw_transaction: bytes) -> str:
        async with self._client() as client:
            response = await client.post(
                f"{self.base_url}/v2/transactions",
                headers={**self._build_headers(), "Content-Type": "application/octet-stream"},
                content=raw_transaction,
            )

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"error": response.text}
            if isinstance(body, dict):
                reason = body.get("reason") or body.get("error") or "rejected"
                detail = body.get("reason_data")
                message = f"Transaction broadcast failed: {reason}"
                if detail:
                    message = f"{message} ({detail})"
            else:
                message = f"Transaction broadcast failed: {body}"
            raise BroadcastError(message)

        txid = response.text.strip().strip('"')
        if not txid:
            raise UpstreamResponseError("Broadcast response did not include a transaction id")
        return txid if txid.startswith("0x") else f"0x{txid}"
