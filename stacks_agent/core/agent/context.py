"""Per-request collaborators handed to every tool handler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ...config import Settings
from ...providers.alex import AlexProvider
from ...providers.hiro import HiroProvider
from ...providers.velar import VelarProvider
from ...services.mock_data import MockHiroProvider
from ...services.wallet import WalletContext, resolve_wallet


@dataclass(frozen=True)
class ToolContext:
    settings: Settings
    wallet: WalletContext
    hiro: HiroProvider
    velar: VelarProvider
    alex: AlexProvider


def build_tool_context(
    settings: Settings,
    *,
    hiro: Optional[HiroProvider] = None,
    velar: Optional[VelarProvider] = None,
    alex: Optional[AlexProvider] = None,
) -> ToolContext:
    """Resolve the wallet and wire up providers for one request cycle.

    Raises ``WalletConfigurationError`` when no wallet can be resolved, before
    any model or tool call is made.
    """

    wallet = resolve_wallet(settings)
    if hiro is None:
        hiro = MockHiroProvider() if settings.mock_mode else HiroProvider()
    return ToolContext(
        settings=settings,
        wallet=wallet,
        hiro=hiro,
        velar=velar or VelarProvider(),
        alex=alex or AlexProvider(),
    )
