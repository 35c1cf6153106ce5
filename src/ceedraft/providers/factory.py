"""Factory for chat models and draft adapters.

Chat models are built through LangChain's ``init_chat_model``; API keys
and hosts come from the usual provider environment variables.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING, Any

from ceedraft.observability.logging import get_logger
from ceedraft.providers.base import ErrorKind
from ceedraft.providers.langchain_adapter import LangChainDraftAdapter

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

log = get_logger(__name__)

_KNOWN_PROVIDERS = frozenset({"ollama", "openai", "anthropic", "google"})

_API_KEY_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
}

_PACKAGES: dict[str, str] = {
    "ollama": "langchain-ollama",
    "openai": "langchain-openai",
    "anthropic": "langchain-anthropic",
    "google": "langchain-google-genai",
}


class ProviderConfigError(Exception):
    """Raised when a provider cannot be constructed.

    A deployment problem (unknown provider, missing credentials or package),
    not an upstream fault: retrying the request cannot fix it.
    """

    kind = ErrorKind.CONFIG

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


def _normalize_provider(provider_name: str) -> str:
    name = provider_name.lower()
    if name == "gemini":
        return "google"
    return name


def create_chat_model(provider_name: str, model: str, **kwargs: Any) -> BaseChatModel:
    """Create a LangChain chat model.

    Args:
        provider_name: ollama, openai, anthropic or google.
        model: Model identifier.
        **kwargs: Extra model options.

    Returns:
        Configured BaseChatModel.

    Raises:
        ProviderConfigError: Unknown provider, missing credentials or
            missing integration package.
    """
    provider = _normalize_provider(provider_name)
    if provider not in _KNOWN_PROVIDERS:
        log.error("provider_unknown", provider=provider)
        raise ProviderConfigError(provider, f"Unknown provider: {provider}")

    kwargs = dict(kwargs)
    if provider == "ollama":
        host = kwargs.pop("host", None) or os.getenv("OLLAMA_HOST")
        if not host:
            log.error("provider_config_error", provider=provider, missing="OLLAMA_HOST")
            raise ProviderConfigError(provider, "OLLAMA_HOST not configured")
        kwargs["base_url"] = host
    else:
        key_var = _API_KEY_VARS[provider]
        api_key = kwargs.get("api_key") or os.getenv(key_var)
        if not api_key:
            log.error("provider_config_error", provider=provider, missing=key_var)
            raise ProviderConfigError(provider, f"API key required. Set {key_var}.")
        kwargs["api_key"] = api_key

    provider_for_init = "google_genai" if provider == "google" else provider
    try:
        from langchain.chat_models import init_chat_model

        chat_model: BaseChatModel = init_chat_model(
            model=model, model_provider=provider_for_init, **kwargs
        )
    except ImportError as e:
        package = _PACKAGES[provider]
        log.error("provider_import_error", provider=provider, package=package)
        raise ProviderConfigError(provider, f"{package} not installed") from e

    log.info("chat_model_created", provider=provider, model=model)
    return chat_model


def create_draft_adapter(provider: str, model: str) -> LangChainDraftAdapter:
    """Adapter factory suitable for ``AdapterCache.get_or_create``."""
    return LangChainDraftAdapter(create_chat_model(provider, model), provider=provider, model=model)
