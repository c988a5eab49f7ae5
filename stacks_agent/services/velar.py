"""Velar DEX token and pool listings."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from ..providers.velar import VelarProvider


def _normalize_token(token: Dict[str, Any]) -> Dict[str, Any]:
    social_links = token.get("socialLinks") or {}
    return {
        "symbol": token.get("symbol"),
        "name": token.get("name"),
        "contractAddress": token.get("contractAddress"),
        "price": token.get("price"),
        "website": social_links.get("website") or "N/A",
    }


def _normalize_pool(pool: Dict[str, Any]) -> Dict[str, Any]:
    tvl = ((pool.get("stats") or {}).get("tvl_usd") or {}).get("value")
    return {
        "symbol": pool.get("symbol"),
        "token0Symbol": pool.get("token0Symbol"),
        "token1Symbol": pool.get("token1Symbol"),
        "tvlUsd": tvl if tvl not in (None, "") else "N/A",
    }


async def get_velar_tokens(symbol: Optional[str] = None, *, velar: VelarProvider) -> Dict[str, Any]:
    raw_tokens = await velar.get_tokens(symbol)
    tokens = [_normalize_token(token) for token in raw_tokens if isinstance(token, dict)]

    if tokens:
        formatted = "\n".join(
            f"Symbol: {t['symbol']}, Name: {t['name']}, Price: {t['price']}, "
            f"Address: {t['contractAddress']}, Website: {t['website']}"
            for t in tokens
        )
    else:
        formatted = "No Velar tokens found"
    return {"tokens": tokens, "formatted": formatted}


def _pool_has_token(pool: Dict[str, Any], token: str) -> bool:
    wanted = token.strip().lower()
    return any(
        str(pool.get(key) or "").lower() == wanted
        for key in ("token0Symbol", "token1Symbol", "token0", "token1")
    )


async def get_velar_pools(
    token0: Optional[str] = None,
    token1: Optional[str] = None,
    *,
    velar: VelarProvider,
) -> Dict[str, Any]:
    """Pools for a pair, or all pools; a single token filters the full listing."""

    raw_pools = await velar.get_pools(token0, token1)
    raw_pools = [pool for pool in raw_pools if isinstance(pool, dict)]

    single = token0 if not token1 else token1 if not token0 else None
    if single:
        raw_pools = [pool for pool in raw_pools if _pool_has_token(pool, single)]

    pools: List[Dict[str, Any]] = [_normalize_pool(pool) for pool in raw_pools]
    if pools:
        formatted = "\n".join(
            f"Symbol: {p['symbol']}, Token Pair: {p['token0Symbol']}-{p['token1Symbol']}, "
            f"Total Value Locked (USD): {p['tvlUsd']}"
            for p in pools
        )
    else:
        formatted = "No Velar pools found"
    return {"pools": pools, "formatted": formatted}
