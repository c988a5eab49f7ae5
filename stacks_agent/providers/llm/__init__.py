from typing import Any, Dict, Type, Optional

from ...config import ConfigurationError
from .base import (
    LLMProvider,
    LLMMessage,
    LLMResponse,
    LLMProviderError,
    LLMProviderRateLimitError,
    ToolArgumentError,
    ToolCall,
    ToolDefinition,
    ToolParameter,
    ToolParameterType,
    ToolResult,
)
from .anthropic import AnthropicProvider
from .openai import OpenAIProvider

PROVIDER_ALIAS_MAP: Dict[str, str] = {
    "claude": "anthropic",
    "gpt": "openai",
}

PROVIDER_DISPLAY_NAMES: Dict[str, str] = {
    "anthropic": "Anthropic Claude",
    "openai": "OpenAI",
}


class LLMConfigurationError(ConfigurationError):
    """Raised when no usable model provider is configured."""


def canonical_provider_name(name: str) -> str:
    """Normalize provider aliases to their canonical identifier."""

    return PROVIDER_ALIAS_MAP.get(name.lower(), name.lower())


# Registry of available LLM providers
PROVIDER_REGISTRY: Dict[str, Type[LLMProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


class LLMProviderFactory:
    """Factory for creating LLM provider instances."""

    @staticmethod
    def create_provider(
        provider_name: str,
        api_key: str,
        model: Optional[str] = None,
        **kwargs,
    ) -> LLMProvider:
        """Create an LLM provider instance."""

        provider_key = canonical_provider_name(provider_name)
        if provider_key not in PROVIDER_REGISTRY:
            available_providers = ", ".join(PROVIDER_REGISTRY.keys())
            raise LLMConfigurationError(
                f"Unsupported provider '{provider_name}'. "
                f"Available providers: {available_providers}"
            )

        if not model:
            raise LLMConfigurationError(f"No model provided for provider '{provider_key}'.")

        return PROVIDER_REGISTRY[provider_key](api_key=api_key, model=model, **kwargs)


def get_available_providers() -> Dict[str, Dict[str, Any]]:
    """Return metadata about supported LLM providers and whether each has a key."""

    from ...config import settings  # Local import so tests can patch settings

    providers_info: Dict[str, Dict[str, Any]] = {}
    for provider_name in PROVIDER_REGISTRY:
        display_name = PROVIDER_DISPLAY_NAMES.get(provider_name, provider_name.title())
        configured = bool(settings.api_key_for_provider(provider_name))
        providers_info[provider_name] = {
            "status": "available" if configured else "unconfigured",
            "default_model": settings.resolve_default_model(provider_name),
            "display_name": display_name,
            "models": settings.provider_models_catalog.get(provider_name, []),
        }
    return providers_info


def get_llm_provider(
    provider_name: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> LLMProvider:
    """Instantiate an LLM provider according to configuration overrides.

    A model id from the catalog selects its provider; otherwise the configured
    default provider is used with its default model.
    """

    from ...config import settings

    model_input = (model or "").strip() or None
    resolved_provider = canonical_provider_name((provider_name or "").strip() or settings.llm_provider)

    if not provider_name and model_input:
        detected_provider = settings.resolve_provider_for_model(model_input)
        if detected_provider:
            resolved_provider = canonical_provider_name(detected_provider)

    api_key = settings.api_key_for_provider(resolved_provider)
    if not api_key:
        raise LLMConfigurationError(f"No API key configured for provider: {resolved_provider}")

    allowed_ids = {
        entry.get("id")
        for entry in settings.provider_models_catalog.get(resolved_provider, [])
        if entry.get("id")
    }
    if model_input and (not allowed_ids or model_input in allowed_ids):
        resolved_model = model_input
    elif resolved_provider == canonical_provider_name(settings.llm_provider) and settings.llm_model in allowed_ids:
        resolved_model = settings.llm_model
    else:
        resolved_model = settings.resolve_default_model(resolved_provider)

    if resolved_provider == "openai":
        kwargs.setdefault("base_url", settings.openai_base_url)
        kwargs.setdefault("timeout", float(settings.request_timeout_seconds) * 2)

    return LLMProviderFactory.create_provider(
        provider_name=resolved_provider,
        api_key=api_key,
        model=resolved_model,
        **kwargs,
    )


__all__ = [
    "LLMProvider",
    "LLMMessage",
    "LLMResponse",
    "LLMProviderError",
    "LLMProviderRateLimitError",
    "LLMConfigurationError",
    "ToolArgumentError",
    "ToolCall",
    "ToolDefinition",
    "ToolParameter",
    "ToolParameterType",
    "ToolResult",
    "AnthropicProvider",
    "OpenAIProvider",
    "LLMProviderFactory",
    "get_available_providers",
    "get_llm_provider",
    "PROVIDER_REGISTRY",
    "canonical_provider_name",
]
