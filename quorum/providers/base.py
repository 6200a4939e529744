"""
Base Provider Implementation

Abstract base class providing common functionality for all LLM provider
adapters: error classification, token estimation and usage metrics.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Optional, Sequence

import tiktoken

from quorum.observability.logging import get_logger
from quorum.observability.metrics import increment_counter
from quorum.providers.interfaces import (
    Completion,
    Message,
    ProviderAuthenticationError,
    ProviderContentFilterError,
    ProviderContextLengthError,
    ProviderError,
    ProviderModelNotAvailableError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    RetryCode,
    TokenUsage,
    UsageCallback,
)

logger = get_logger(__name__)

_ENCODING_NAME = "cl100k_base"


class BaseProvider(ABC):
    """
    Abstract base provider providing common functionality.

    Subclasses must implement:
    - name property
    - _call_impl()
    - _stream_impl()

    The public ``call``/``stream`` wrappers translate SDK exceptions into
    the ProviderError hierarchy and record token metrics. Errors are always
    re-raised: retry policy lives in the expert runner.

    Example:
        >>> class MyProvider(BaseProvider):
        ...     @property
        ...     def name(self) -> str:
        ...         return "myprovider"
        ...
        ...     async def _call_impl(self, model, messages) -> Completion:
        ...         raise NotImplementedError
        ...
        ...     async def _stream_impl(self, model, messages, usage):
        ...         yield "chunk"
    """

    def __init__(self, max_tokens: int = 8192):
        self.max_tokens = max_tokens
        self._encoding: Optional[tiktoken.Encoding] = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (e.g., 'openai', 'anthropic')"""
        raise NotImplementedError

    async def call(self, model: str, messages: Sequence[Message]) -> Completion:
        """
        Execute a completion and return its text and usage.

        Raises:
            ProviderError: Classified backend failure
        """
        self._validate(model, messages)
        try:
            completion = await self._call_impl(model, list(messages))
        except ProviderError:
            raise
        except Exception as exc:
            raise self._to_provider_error(exc) from exc
        self._record_usage(completion.usage)
        return completion

    async def stream(
        self,
        model: str,
        messages: Sequence[Message],
        on_usage: Optional[UsageCallback] = None,
    ) -> AsyncIterator[str]:
        """
        Stream text fragments from the backend.

        ``on_usage`` is invoked exactly once, after the last fragment or
        when the stream fails part way.
        """
        self._validate(model, messages)
        usage = _UsageAccumulator()
        try:
            async for fragment in self._stream_impl(model, list(messages), usage):
                usage.fragments.append(fragment)
                yield fragment
        except ProviderError:
            raise
        except Exception as exc:
            raise self._to_provider_error(exc) from exc
        finally:
            final = usage.resolve(self, messages)
            self._record_usage(final)
            if on_usage is not None:
                on_usage(final)

    @abstractmethod
    async def _call_impl(self, model: str, messages: list[Message]) -> Completion:
        """Provider-specific non-streaming call."""
        raise NotImplementedError

    @abstractmethod
    def _stream_impl(
        self, model: str, messages: list[Message], usage: "_UsageAccumulator"
    ) -> AsyncIterator[str]:
        """Provider-specific streaming call; sets ``usage`` token counts when reported."""
        raise NotImplementedError

    def estimate_tokens(self, text: str) -> int:
        """
        Estimate token count for text using the cl100k encoding.

        Used only when a backend does not report usage.
        """
        if not text:
            return 0
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(_ENCODING_NAME)
        return len(self._encoding.encode(text, disallowed_special=()))

    def _validate(self, model: str, messages: Sequence[Message]) -> None:
        if not model:
            raise ValueError("Model must be specified")
        if not messages:
            raise ValueError("At least one message is required")

    def _record_usage(self, usage: TokenUsage) -> None:
        increment_counter(
            "llm_tokens_total", usage.input_tokens,
            labels={"provider": self.name, "token_type": "input"},
        )
        increment_counter(
            "llm_tokens_total", usage.output_tokens,
            labels={"provider": self.name, "token_type": "output"},
        )

    def _to_provider_error(self, error: Exception) -> ProviderError:
        code = self._categorize_error(error)
        logger.debug("provider_error_classified", provider=self.name, retry_code=code.value,
                     error_type=type(error).__name__)
        if code == RetryCode.RATE_LIMIT_ERROR:
            return ProviderRateLimitError(str(error))
        if code == RetryCode.TIMEOUT_ERROR:
            return ProviderTimeoutError(str(error))
        if code == RetryCode.AUTHENTICATION_ERROR:
            return ProviderAuthenticationError(str(error))
        if code == RetryCode.MODEL_NOT_AVAILABLE_ERROR:
            return ProviderModelNotAvailableError(str(error))
        if code == RetryCode.CONTEXT_LENGTH_EXCEEDED:
            return ProviderContextLengthError(str(error))
        if code == RetryCode.CONTENT_FILTER_ERROR:
            return ProviderContentFilterError(str(error))
        return ProviderError(str(error), code)

    def _categorize_error(self, error: Exception) -> RetryCode:
        """
        Categorize an SDK error.

        Uses HTTP status codes when the exception carries one, then the
        exception type name, then message heuristics.
        """
        status_code = getattr(error, "status_code", None)
        if status_code is not None:
            if status_code == 429:
                return RetryCode.RATE_LIMIT_ERROR
            if status_code in (401, 403):
                return RetryCode.AUTHENTICATION_ERROR
            if status_code == 404:
                return RetryCode.MODEL_NOT_AVAILABLE_ERROR
            if status_code == 408:
                return RetryCode.TIMEOUT_ERROR

        error_type = type(error).__name__
        if "RateLimit" in error_type:
            return RetryCode.RATE_LIMIT_ERROR
        if "Timeout" in error_type:
            return RetryCode.TIMEOUT_ERROR
        if "Authentication" in error_type or "PermissionDenied" in error_type:
            return RetryCode.AUTHENTICATION_ERROR

        error_str = str(error).lower()
        if "rate limit" in error_str or "429" in error_str:
            return RetryCode.RATE_LIMIT_ERROR
        if "timeout" in error_str or "timed out" in error_str:
            return RetryCode.TIMEOUT_ERROR
        if "auth" in error_str or "401" in error_str or "403" in error_str:
            return RetryCode.AUTHENTICATION_ERROR
        if "model" in error_str and "not" in error_str:
            return RetryCode.MODEL_NOT_AVAILABLE_ERROR
        if "context" in error_str or "too long" in error_str:
            return RetryCode.CONTEXT_LENGTH_EXCEEDED
        if "content" in error_str and ("filter" in error_str or "policy" in error_str):
            return RetryCode.CONTENT_FILTER_ERROR

        return RetryCode.EXECUTION_ERROR


class _UsageAccumulator:
    """Mutable holder filled by a stream while it runs."""

    def __init__(self) -> None:
        self.input_tokens: Optional[int] = None
        self.output_tokens: Optional[int] = None
        self.fragments: list[str] = []

    def resolve(self, provider: BaseProvider, messages: Sequence[Message]) -> TokenUsage:
        input_tokens = self.input_tokens
        if input_tokens is None:
            input_tokens = provider.estimate_tokens("\n".join(m.content for m in messages))
        output_tokens = self.output_tokens
        if output_tokens is None:
            output_tokens = provider.estimate_tokens("".join(self.fragments))
        return TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens)


__all__ = ["BaseProvider"]
