from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from .base import Provider, UpstreamResponseError


class AlexProvider(Provider):
    """ALEX SDK API provider for swappable tokens and latest prices"""

    name = "alex"
    timeout_s = 15

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(transport=transport)
        self.base_url = (base_url or settings.alex_sdk_api_url).rstrip("/")
        self.token_list_path = settings.alex_token_list_path
        self.token_prices_path = settings.alex_token_prices_path

    async def ready(self) -> bool:
        return True

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}{self.token_prices_path}")
                response.raise_for_status()
                return {"status": "healthy", "latency_ms": int(response.elapsed.total_seconds() * 1000)}
        except Exception as e:
            return {"status": "error", "reason": str(e)}

    async def _get(self, path: str) -> Any:
        async with self._client() as client:
            response = await client.get(f"{self.base_url}{path}")
            response.raise_for_status()
            return response.json()

    async def get_token_list(self) -> List[Dict[str, Any]]:
        data = await self._get(self.token_list_path)
        if isinstance(data, dict):
            data = data.get("data", data.get("tokens"))
        if not isinstance(data, list):
            raise UpstreamResponseError("Unexpected response format from ALEX token list")
        return [entry for entry in data if isinstance(entry, dict)]

    async def get_token_prices(self) -> Dict[str, Any]:
        """Latest USD prices keyed by token identifier.

        The API has served both a flat ``{token: price}`` object and a
        ``{"data": [{"contract_id": ..., "last_price_usd": ...}]}`` listing;
        both are folded into one mapping.
        """
        data = await self._get(self.token_prices_path)

        rows = data["data"] if isinstance(data, dict) and "data" in data else data
        if isinstance(rows, list):
            prices: Dict[str, Any] = {}
            for row in rows:
                if not isinstance(row, dict):
                    continue
                token = row.get("contract_id") or row.get("token") or row.get("id")
                price = row.get("last_price_usd", row.get("price", row.get("avg_price_usd")))
                if token and price is not None:
                    prices[str(token)] = price
            return prices
        if isinstance(rows, dict):
            return {str(token): price for token, price in rows.items() if price is not None}
        raise UpstreamResponseError("Unexpected response format from ALEX token prices")
