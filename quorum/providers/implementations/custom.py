"""
Custom Endpoint Provider Implementation

Adapter for OpenAI-compatible endpoints reached through a caller-supplied
base URL and credential (self-hosted gateways, OpenRouter, local servers).
"""

from __future__ import annotations

from typing import Any, Dict, List

import openai

from quorum.providers.implementations.openai import OpenAIProvider
from quorum.providers.interfaces import Message


class CustomEndpointProvider(OpenAIProvider):
    """
    Provider for OpenAI-compatible endpoints.

    Compatible servers commonly predate ``max_completion_tokens``, so the
    legacy ``max_tokens`` parameter is sent instead.

    Example:
        >>> client = openai.AsyncOpenAI(base_url="http://localhost:8000/v1", api_key="x")
        >>> provider = CustomEndpointProvider(client, name="local-llama")
    """

    def __init__(self, client: openai.AsyncOpenAI, *, name: str, max_tokens: int = 8192):
        super().__init__(client, max_tokens=max_tokens, name=name)

    def _build_chat_params(
        self,
        model: str,
        messages: List[Message],
        *,
        stream: bool
    ) -> Dict[str, Any]:
        params = super()._build_chat_params(model, messages, stream=stream)
        params["max_tokens"] = params.pop("max_completion_tokens")
        return params


__all__ = ["CustomEndpointProvider"]
