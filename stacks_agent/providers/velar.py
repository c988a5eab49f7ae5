from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from ..config import settings
from .base import Provider, UpstreamResponseError


class VelarProvider(Provider):
    """Velar DEX API provider for token and pool listings"""

    name = "velar"
    timeout_s = 15

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(transport=transport)
        self.base_url = (base_url or settings.velar_base_url).rstrip("/")

    async def ready(self) -> bool:
        return True

    async def health_check(self) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/tokens", params={"symbol": "STX"})
                response.raise_for_status()
                return {"status": "healthy", "latency_ms": int(response.elapsed.total_seconds() * 1000)}
        except Exception as e:
            return {"status": "error", "reason": str(e)}

    async def get_tokens(self, symbol: Optional[str] = None) -> List[Dict[str, Any]]:
        """Token listing; ``symbol=all`` when no filter is given"""
        async with self._client() as client:
            response = await client.get(
                f"{self.base_url}/tokens",
                params={"symbol": symbol or "all"},
            )
            response.raise_for_status()
            data = response.json()

        if isinstance(data, dict) and isinstance(data.get("data"), list):
            data = data["data"]
        if not isinstance(data, list):
            raise UpstreamResponseError("Unexpected response format from Velar API")
        return data

    async def get_pools(self, token0: Optional[str] = None, token1: Optional[str] = None) -> List[Dict[str, Any]]:
        """All pools, or the pools of one pair when both tokens are given"""
        url = f"{self.base_url}/pools"
        if token0 and token1:
            url = f"{url}/{quote(token0, safe='')}/{quote(token1, safe='')}"

        async with self._client() as client:
            response = await client.get(url)
            response.raise_for_status()
            data = response.json()

        pools = data.get("data") if isinstance(data, dict) else None
        if not isinstance(pools, list):
            raise UpstreamResponseError("Unexpected response format from Velar API")
        return pools
