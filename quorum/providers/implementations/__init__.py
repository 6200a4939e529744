"""
Provider implementations for the supported backends

Exports:
    - OpenAIProvider: OpenAI chat models
    - AnthropicProvider: Anthropic Claude models
    - CustomEndpointProvider: OpenAI-compatible endpoints (OpenRouter, gateways)
"""

from quorum.providers.implementations.anthropic import AnthropicProvider
from quorum.providers.implementations.custom import CustomEndpointProvider
from quorum.providers.implementations.openai import OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "CustomEndpointProvider",
    "OpenAIProvider",
]
