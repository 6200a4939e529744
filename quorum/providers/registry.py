"""
Provider Factory

Builds provider adapters from ProviderHandles. SDK clients are created
lazily and shared through an explicit ClientCache owned by the factory.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

import anthropic
import openai

from quorum.observability.logging import get_logger
from quorum.providers.clients import ClientCache, credential_fingerprint
from quorum.providers.implementations import (
    AnthropicProvider,
    CustomEndpointProvider,
    OpenAIProvider,
)
from quorum.providers.interfaces import (
    LLMProvider,
    ProviderAuthenticationError,
    ProviderHandle,
    ProviderNotSupportedError,
)

if TYPE_CHECKING:
    from quorum.config import BackendCredentials, QuorumConfig

logger = get_logger(__name__)


class ProviderFactory:
    """
    Create provider adapters for handles.

    Dispatch:
        - handles with ``is_custom`` or a ``base_url`` use the OpenAI-compatible
          custom adapter with the handle's own endpoint and credential
        - ``openrouter`` is a custom endpoint preset from configuration
        - ``openai`` and ``anthropic`` use their official SDKs

    Adapters are cached per handle id and model-independent, so one adapter
    serves every run that uses the same provider.

    Example:
        >>> factory = ProviderFactory(load_config())
        >>> provider = factory.create(ProviderHandle(id="openai", name="OpenAI", model="gpt-4o"))
    """

    def __init__(self, config: Optional["QuorumConfig"] = None, cache: Optional[ClientCache] = None):
        if config is None:
            from quorum.config import QuorumConfig
            config = QuorumConfig()
        self.config = config
        self.cache = cache if cache is not None else ClientCache()
        self._adapters: Dict[tuple, LLMProvider] = {}

    def create(self, handle: ProviderHandle) -> LLMProvider:
        """
        Return the adapter for a handle.

        Raises:
            ProviderNotSupportedError: If no adapter exists for the handle's id
            ProviderAuthenticationError: If credentials or the custom base URL
                are missing
        """
        key = (handle.id, handle.base_url, handle.is_custom, credential_fingerprint(handle.api_key))
        adapter = self._adapters.get(key)
        if adapter is None:
            adapter = self._build(handle)
            self._adapters[key] = adapter
            logger.debug("provider_adapter_created", provider=handle.id, adapter=type(adapter).__name__)
        return adapter

    def _build(self, handle: ProviderHandle) -> LLMProvider:
        max_tokens = self.config.max_tokens

        if handle.is_custom or handle.base_url:
            if not handle.base_url:
                raise ProviderAuthenticationError(
                    f"Custom provider {handle.id!r} has no base_url configured"
                )
            client = self._openai_client("custom", handle.base_url, handle.api_key)
            return CustomEndpointProvider(client, name=handle.id, max_tokens=max_tokens)

        if handle.id == "openrouter":
            creds = self.config.openrouter
            client = self._openai_client("openrouter", creds.base_url, creds.resolve_api_key())
            return CustomEndpointProvider(client, name="openrouter", max_tokens=max_tokens)

        if handle.id == "openai":
            creds = self.config.openai
            client = self._openai_client("openai", creds.base_url, creds.resolve_api_key())
            return OpenAIProvider(client, max_tokens=max_tokens)

        if handle.id == "anthropic":
            client = self._anthropic_client(self.config.anthropic)
            return AnthropicProvider(client, max_tokens=max_tokens)

        raise ProviderNotSupportedError(handle.id)

    def _openai_client(
        self, kind: str, base_url: Optional[str], api_key: Optional[str]
    ) -> openai.AsyncOpenAI:
        # Local OpenAI-compatible servers often run without a key.
        if not api_key and kind != "custom":
            raise ProviderAuthenticationError(f"No API key configured for {kind}")
        return self.cache.get_or_create(
            kind,
            base_url,
            api_key,
            lambda: openai.AsyncOpenAI(base_url=base_url, api_key=api_key or ""),
        )

    def _anthropic_client(self, creds: "BackendCredentials") -> anthropic.AsyncAnthropic:
        api_key = creds.resolve_api_key()
        if not api_key:
            raise ProviderAuthenticationError("No API key configured for anthropic")
        return self.cache.get_or_create(
            "anthropic",
            creds.base_url,
            api_key,
            lambda: anthropic.AsyncAnthropic(base_url=creds.base_url, api_key=api_key),
        )


__all__ = ["ProviderFactory"]
