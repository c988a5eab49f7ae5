"""External data adapters: provider calls normalized into tool results."""

from .wallet import (
    MOCK_WALLET_ADDRESS,
    WalletConfigurationError,
    WalletContext,
    resolve_wallet,
)

__all__ = [
    "MOCK_WALLET_ADDRESS",
    "WalletConfigurationError",
    "WalletContext",
    "resolve_wallet",
]
