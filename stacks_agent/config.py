import os

from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class ConfigurationError(RuntimeError):
    """Raised when a required secret or setting is missing."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Ensure we pick up legacy environment variable aliases."""

        super().model_post_init(__context)

        if not self.wallet_mnemonic:
            fallback = os.getenv("NEXT_PUBLIC_WALLET_MNEMONIC")
            if fallback:
                object.__setattr__(self, "wallet_mnemonic", fallback)

        if not self.hiro_api_key:
            fallback = os.getenv("NEXT_PUBLIC_HIRO_API_KEY")
            if fallback:
                object.__setattr__(self, "hiro_api_key", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="auto",
        description="Log rendering: json, console, or auto (console at DEBUG, json otherwise)",
    )

    # Wallet
    wallet_mnemonic: str = Field(
        default="",
        description="BIP39 mnemonic the connected wallet is derived from",
        validation_alias=AliasChoices("wallet_mnemonic", "WALLET_MNEMONIC"),
    )
    stacks_network: str = Field(default="mainnet", description="Stacks network: mainnet or testnet")
    mock_mode: bool = Field(
        default=False,
        description="Serve canned wallet address, balance and transaction data instead of live lookups",
    )

    # External APIs
    hiro_api_key: str = Field(default="", description="Hiro API key sent as X-API-Key")
    hiro_base_url: str = Field(default="https://api.hiro.so", description="Hiro indexer / node base URL")
    velar_base_url: str = Field(default="https://api.velar.co", description="Velar DEX API base URL")
    alex_sdk_api_url: str = Field(
        default="https://alex-sdk-api.alexlab.co",
        description="ALEX SDK API base URL used for token lists and prices",
    )
    alex_token_list_path: str = Field(default="/v2/public/token-list", description="ALEX token list path")
    alex_token_prices_path: str = Field(default="/v2/public/token-prices", description="ALEX token prices path")
    request_timeout_seconds: int = Field(default=30, description="Request timeout")

    # Contracts
    sbtc_contract_address: str = Field(
        default="SP804CDG3KBN9M6E00AD744K8DC697G7HBCG520Q",
        description="Deployer of the sBTC incentive contract",
    )
    sbtc_contract_name: str = Field(default="sbtc-yield-rewards-v3", description="sBTC incentive contract name")
    alex_amm_contract_address: str = Field(
        default="SP102V8P0F7JX67ARQ77WEA3D3CFB5XW39REDT0AM",
        description="Deployer of the ALEX AMM pool contract",
    )
    alex_amm_contract_name: str = Field(default="amm-pool-v2-01", description="ALEX AMM pool contract name")
    alex_stx_token: str = Field(
        default="SP102V8P0F7JX67ARQ77WEA3D3CFB5XW39REDT0AM.token-wstx-v2",
        description="ALEX wrapped STX token principal",
    )
    alex_alex_token: str = Field(
        default="SP102V8P0F7JX67ARQ77WEA3D3CFB5XW39REDT0AM.token-alex",
        description="ALEX token principal",
    )
    default_tx_fee_ustx: int = Field(
        default=3000,
        ge=0,
        description="Fallback fee in micro-STX when fee estimation is unavailable",
    )

    # LLM Provider Settings
    llm_provider: str = Field(default="openai", description="Default LLM provider")
    anthropic_api_key: str = Field(default="", description="Anthropic API key")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_base_url: str = Field(default="https://api.openai.com", description="OpenAI-compatible API base URL")

    # LLM Configuration
    llm_model: str = Field(default="gpt-4o", description="Default LLM model")
    max_tokens: int = Field(default=4000, description="Maximum tokens for LLM response")
    temperature: float = Field(default=0.7, description="LLM temperature setting")
    max_tool_steps: int = Field(
        default=5,
        ge=1,
        description="Maximum model steps in one tool-calling interaction",
    )
    provider_models_catalog: Dict[str, List[Dict[str, Any]]] = Field(
        default_factory=lambda: {
            "openai": [
                {
                    "id": "gpt-4o",
                    "label": "GPT-4o",
                    "description": "Default model for wallet and DeFi questions.",
                    "default": True,
                },
                {
                    "id": "gpt-4o-mini",
                    "label": "GPT-4o mini",
                    "description": "Faster, cheaper lookups.",
                },
            ],
            "anthropic": [
                {
                    "id": "claude-sonnet-4-20250514",
                    "label": "Claude Sonnet 4",
                    "description": "Balanced depth and latency for daily use.",
                    "default": True,
                },
            ],
        },
        description="Provider models metadata surfaced to clients",
    )

    @property
    def is_mainnet(self) -> bool:
        return self.stacks_network.lower() != "testnet"

    @property
    def has_wallet_mnemonic(self) -> bool:
        return bool(self.wallet_mnemonic.strip())

    @property
    def has_anthropic_key(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def has_openai_key(self) -> bool:
        return bool(self.openai_api_key)

    def api_key_for_provider(self, provider: str) -> str:
        provider_lower = provider.lower()
        if provider_lower in ["anthropic", "claude"]:
            return self.anthropic_api_key
        if provider_lower in ["openai", "gpt"]:
            return self.openai_api_key
        return ""

    @property
    def has_llm_key(self) -> bool:
        """Check if we have an API key for the configured LLM provider"""
        return bool(self.api_key_for_provider(self.llm_provider))

    def resolve_default_model(self, provider: str) -> str:
        provider_lower = provider.lower()
        options = self.provider_models_catalog.get(provider_lower, [])
        for option in options:
            default_flag = option.get("default")
            if isinstance(default_flag, str):
                is_default = default_flag.lower() in {"true", "1", "yes"}
            else:
                is_default = bool(default_flag)
            if is_default:
                return option.get("id", self.llm_model)
        if options:
            return options[0].get("id", self.llm_model)
        return self.llm_model

    def resolve_provider_for_model(self, model_id: str) -> Optional[str]:
        target = (model_id or "").strip().lower()
        if not target:
            return None
        for provider, options in self.provider_models_catalog.items():
            for option in options:
                option_id = option.get("id")
                if option_id and option_id.lower() == target:
                    return provider
        return None


# Global settings instance
settings = Settings()
