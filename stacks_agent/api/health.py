import asyncio
from typing import Any, Dict

from fastapi import APIRouter, Query

from ..config import settings
from ..providers.alex import AlexProvider
from ..providers.hiro import HiroProvider
from ..providers.llm import get_available_providers, get_llm_provider
from ..providers.velar import VelarProvider
from ..services.mock_data import MockHiroProvider

router = APIRouter()


@router.get("/healthz")
async def health_check(
    deep: bool = Query(False, description="Also send a test prompt to the default LLM"),
) -> Dict[str, Any]:
    """Health check endpoint that verifies provider status"""

    providers = {
        "hiro": MockHiroProvider() if settings.mock_mode else HiroProvider(),
        "velar": VelarProvider(),
        "alex": AlexProvider(),
    }
    statuses = await asyncio.gather(*(provider.health_check() for provider in providers.values()))
    provider_status = dict(zip(providers, statuses))

    llm_status: Dict[str, Any] = {
        "provider": settings.llm_provider,
        "model": settings.llm_model,
        "configured": settings.has_llm_key,
        "providers": get_available_providers(),
    }
    if deep and settings.has_llm_key:
        llm_status["check"] = await get_llm_provider().health_check()

    wallet_status = {
        "mode": "mock" if settings.mock_mode else "live",
        "configured": settings.mock_mode or settings.has_wallet_mnemonic,
        "network": "mainnet" if settings.is_mainnet else "testnet",
    }

    available_providers = sum(1 for status in provider_status.values() if status["status"] == "healthy")
    all_healthy = available_providers == len(provider_status)
    ready = all_healthy and llm_status["configured"] and wallet_status["configured"]

    return {
        "status": "healthy" if ready else "degraded",
        "providers": provider_status,
        "available_providers": available_providers,
        "total_providers": len(provider_status),
        "llm": llm_status,
        "wallet": wallet_status,
    }
