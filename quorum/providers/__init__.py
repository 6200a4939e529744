"""
LLM Provider Abstraction Layer

Uniform async interface over OpenAI, Anthropic and OpenAI-compatible custom
endpoints, so expert runners and the orchestrator never need
backend-specific knowledge.

Key Components:
    - LLMProvider: Protocol defining the adapter interface
    - Message / TokenUsage / ProviderHandle: Shared data models
    - BaseProvider: Abstract base class with error mapping and usage metrics
    - ProviderFactory: Builds adapters for handles over a shared ClientCache

Example:
    >>> from quorum.providers import ProviderFactory, ProviderHandle, Message
    >>> factory = ProviderFactory()
    >>> provider = factory.create(ProviderHandle(id="openai", name="OpenAI", model="gpt-4o"))
    >>> completion = await provider.call("gpt-4o", [Message(role="user", content="Hi")])
    >>> print(completion.usage.total_tokens)
"""

from quorum.providers.interfaces import (
    Completion,
    ImageAttachment,
    LLMProvider,
    Message,
    ProviderAuthenticationError,
    ProviderContentFilterError,
    ProviderContextLengthError,
    ProviderError,
    ProviderHandle,
    ProviderModelNotAvailableError,
    ProviderNotSupportedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    RetryCode,
    TokenUsage,
    UsageCallback,
)
from quorum.providers.base import BaseProvider
from quorum.providers.clients import ClientCache
from quorum.providers.registry import ProviderFactory

__all__ = [
    "BaseProvider",
    "ClientCache",
    "Completion",
    "ImageAttachment",
    "LLMProvider",
    "Message",
    "ProviderAuthenticationError",
    "ProviderContentFilterError",
    "ProviderContextLengthError",
    "ProviderError",
    "ProviderFactory",
    "ProviderHandle",
    "ProviderModelNotAvailableError",
    "ProviderNotSupportedError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "RetryCode",
    "TokenUsage",
    "UsageCallback",
]
