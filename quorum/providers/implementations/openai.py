"""
OpenAI Provider Implementation

Adapter for OpenAI chat models via the official OpenAI Python SDK with
support for streaming and multimodal prompts.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List

import openai

from quorum.providers.base import BaseProvider, _UsageAccumulator
from quorum.providers.images import to_openai_part
from quorum.providers.interfaces import Completion, Message, TokenUsage


class OpenAIProvider(BaseProvider):
    """Provider for OpenAI chat models using the official async SDK."""

    def __init__(self, client: openai.AsyncOpenAI, *, max_tokens: int = 8192, name: str = "openai"):
        super().__init__(max_tokens=max_tokens)
        self.client = client
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def _call_impl(self, model: str, messages: List[Message]) -> Completion:
        params = self._build_chat_params(model, messages, stream=False)
        completion = await self.client.chat.completions.create(**params)
        content = ""
        if completion.choices:
            content = completion.choices[0].message.content or ""
        usage = getattr(completion, "usage", None)
        if usage is not None:
            token_usage = TokenUsage(
                input_tokens=usage.prompt_tokens or 0,
                output_tokens=usage.completion_tokens or 0,
            )
        else:
            token_usage = TokenUsage(
                input_tokens=self.estimate_tokens("\n".join(m.content for m in messages)),
                output_tokens=self.estimate_tokens(content),
            )
        return Completion(text=content, usage=token_usage)

    async def _stream_impl(
        self, model: str, messages: List[Message], usage: _UsageAccumulator
    ) -> AsyncIterator[str]:
        params = self._build_chat_params(model, messages, stream=True)
        stream = await self.client.chat.completions.create(**params)
        async for chunk in stream:
            if chunk.choices:
                delta = getattr(chunk.choices[0], "delta", None)
                text_piece = getattr(delta, "content", None) if delta is not None else None
                if text_piece:
                    yield text_piece
            chunk_usage = getattr(chunk, "usage", None)
            if chunk_usage is not None:
                usage.input_tokens = chunk_usage.prompt_tokens or 0
                usage.output_tokens = chunk_usage.completion_tokens or 0

    def _build_chat_params(
        self,
        model: str,
        messages: List[Message],
        *,
        stream: bool
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": model,
            "messages": [self._normalize_message(message) for message in messages],
            "max_completion_tokens": self.max_tokens,
        }
        if stream:
            params["stream"] = True
            params["stream_options"] = {"include_usage": True}
        return params

    def _normalize_message(self, message: Message) -> Dict[str, Any]:
        if not message.images:
            return {"role": message.role, "content": message.content}
        content: List[Dict[str, Any]] = []
        if message.content:
            content.append({"type": "text", "text": message.content})
        content.extend(to_openai_part(image) for image in message.images)
        return {"role": message.role, "content": content}


__all__ = ["OpenAIProvider"]
