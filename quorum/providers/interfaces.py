"""
Provider Interface Definitions

Defines the core protocols and data models for LLM provider abstraction.
Every backend adapter implements the LLMProvider protocol so the expert
runners and the orchestrator never need backend-specific knowledge.
"""

from __future__ import annotations

from enum import Enum
from typing import (
    AsyncIterator,
    Callable,
    List,
    Literal,
    Optional,
    Protocol,
    Sequence,
)

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RetryCode(str, Enum):
    """
    Error categorization for provider failures.

    Expert runners treat every category as retryable within their budget;
    the code is carried on errors for logging and metrics.
    """

    NONE = "none"
    RATE_LIMIT_ERROR = "rate_limit_error"
    TIMEOUT_ERROR = "timeout_error"
    AUTHENTICATION_ERROR = "authentication_error"
    MODEL_NOT_AVAILABLE_ERROR = "model_not_available_error"
    EXECUTION_ERROR = "execution_error"
    CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
    CONTENT_FILTER_ERROR = "content_filter_error"


# ============================================================================
# Custom Provider Exception Hierarchy
# ============================================================================


class ProviderError(Exception):
    """
    Base exception for all provider-related errors.

    All provider exceptions inherit from this class so that callers can
    handle backend failures uniformly.
    """

    def __init__(self, message: str, retry_code: RetryCode = RetryCode.EXECUTION_ERROR):
        super().__init__(message)
        self.retry_code = retry_code


class ProviderRateLimitError(ProviderError):
    """Raised when provider rate limits are exceeded (HTTP 429)."""

    def __init__(self, message: str = "Rate limit exceeded"):
        super().__init__(message, RetryCode.RATE_LIMIT_ERROR)


class ProviderTimeoutError(ProviderError):
    """Raised when a provider request times out."""

    def __init__(self, message: str = "Request timeout"):
        super().__init__(message, RetryCode.TIMEOUT_ERROR)


class ProviderAuthenticationError(ProviderError):
    """Raised when authentication fails (invalid or missing API key)."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, RetryCode.AUTHENTICATION_ERROR)


class ProviderModelNotAvailableError(ProviderError):
    """Raised when the requested model does not exist or is unavailable."""

    def __init__(self, message: str = "Model not available"):
        super().__init__(message, RetryCode.MODEL_NOT_AVAILABLE_ERROR)


class ProviderContextLengthError(ProviderError):
    """Raised when input exceeds the model's context length."""

    def __init__(self, message: str = "Context length exceeded"):
        super().__init__(message, RetryCode.CONTEXT_LENGTH_EXCEEDED)


class ProviderContentFilterError(ProviderError):
    """Raised when content violates the provider's content policy."""

    def __init__(self, message: str = "Content filter triggered"):
        super().__init__(message, RetryCode.CONTENT_FILTER_ERROR)


class ProviderNotSupportedError(ProviderError):
    """Raised when no adapter exists for a provider handle."""

    def __init__(self, provider_id: str):
        super().__init__(f"No adapter available for provider: {provider_id}")
        self.provider_id = provider_id


# ============================================================================
# Data Models
# ============================================================================


class TokenUsage(BaseModel):
    """
    Token accounting for one or more provider calls.

    Usage values are additive: ``a + b`` sums both counters, which is how
    the orchestrator accumulates usage across every call of a solve.

    Example:
        >>> total = TokenUsage(input_tokens=10, output_tokens=5) + TokenUsage(input_tokens=3)
        >>> total.input_tokens
        13
    """

    input_tokens: int = Field(0, description="Input tokens consumed", ge=0)
    output_tokens: int = Field(0, description="Output tokens generated", ge=0)

    model_config = ConfigDict(frozen=True)

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class ImageAttachment(BaseModel):
    """
    Image attached to a message.

    Either ``url`` (a remote URL or a ``data:`` URL) or ``data`` (raw
    bytes) must be set. ``mime_type`` is the declared type, which may be
    wrong; adapters for strict backends correct it by sniffing the bytes.
    """

    mime_type: str = Field("image/png", description="Declared MIME type")
    url: Optional[str] = Field(None, description="Remote URL or data: URL")
    data: Optional[bytes] = Field(None, description="Raw image bytes")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _require_source(self) -> "ImageAttachment":
        if not self.url and not self.data:
            raise ValueError("image attachment needs either url or data")
        return self


class Message(BaseModel):
    """
    Provider-agnostic chat message.

    A conversation is an ordered sequence of messages, oldest first.
    """

    role: Literal["system", "user", "assistant"] = Field(..., description="Message role")
    content: str = Field(..., description="Message text")
    images: List[ImageAttachment] = Field(
        default_factory=list,
        description="Optional image attachments",
    )

    model_config = ConfigDict(frozen=True)


class ProviderHandle(BaseModel):
    """
    Identity and selection of one provider for an orchestration run.

    Supplied by the caller; the settings collaborator owns persistence.

    Attributes:
        id: Provider identifier ('openai', 'anthropic', 'openrouter' or a custom id)
        name: Display name used in summaries and steps
        enabled: Whether the provider takes part in the run
        model: Selected model name
        base_url: Custom endpoint (OpenAI-compatible) if any
        api_key: Credential for the custom endpoint
        is_custom: Whether this handle describes a custom endpoint

    Example:
        >>> handle = ProviderHandle(id="openai", name="OpenAI", model="gpt-4o")
    """

    id: str = Field(..., description="Provider identifier", min_length=1)
    name: str = Field(..., description="Display name", min_length=1)
    enabled: bool = Field(True, description="Whether provider is enabled")
    model: str = Field(..., description="Selected model", min_length=1)
    base_url: Optional[str] = Field(None, description="Custom endpoint base URL")
    api_key: Optional[str] = Field(None, description="Custom endpoint credential", repr=False)
    is_custom: bool = Field(False, description="Custom OpenAI-compatible endpoint")

    model_config = ConfigDict(frozen=True)


class Completion(BaseModel):
    """Result of a non-streaming provider call."""

    text: str = Field(..., description="Generated text")
    usage: TokenUsage = Field(default_factory=TokenUsage, description="Token usage")


UsageCallback = Callable[[TokenUsage], None]


class LLMProvider(Protocol):
    """
    Abstract interface for LLM provider adapters.

    Design Notes:
        - Uses Protocol for structural subtyping (duck typing)
        - Async-first: both entry points are coroutines / async iterators
        - Errors propagate to the caller; retry policy belongs to the
          expert runner, not the adapter

    Example Implementation:
        >>> class EchoProvider:
        ...     name = "echo"
        ...
        ...     async def call(self, model, messages):
        ...         return Completion(text=messages[-1].content)
        ...
        ...     async def stream(self, model, messages, on_usage=None):
        ...         yield messages[-1].content
    """

    @property
    def name(self) -> str:
        """Provider name (e.g., 'openai', 'anthropic')"""
        ...

    async def call(self, model: str, messages: Sequence[Message]) -> Completion:
        """
        Execute a completion and return the full text with usage.

        Raises:
            ProviderError: On backend failure
        """
        ...

    def stream(
        self,
        model: str,
        messages: Sequence[Message],
        on_usage: Optional[UsageCallback] = None,
    ) -> AsyncIterator[str]:
        """
        Stream text fragments.

        ``on_usage`` receives the final usage once the stream ends,
        including when it ends with an error.
        """
        ...
