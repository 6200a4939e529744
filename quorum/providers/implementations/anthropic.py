"""
Anthropic Provider Implementation

Direct adapter for Anthropic Claude using the official Anthropic Python SDK.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import anthropic

from quorum.providers.base import BaseProvider, _UsageAccumulator
from quorum.providers.images import to_anthropic_part
from quorum.providers.interfaces import Completion, Message, TokenUsage


class AnthropicProvider(BaseProvider):
    """Provider for Anthropic Claude models using the official async SDK."""

    def __init__(self, client: anthropic.AsyncAnthropic, *, max_tokens: int = 8192):
        super().__init__(max_tokens=max_tokens)
        self.client = client

    @property
    def name(self) -> str:
        return "anthropic"

    async def _call_impl(self, model: str, messages: List[Message]) -> Completion:
        params = self._build_params(model, messages)
        response = await self.client.messages.create(**params)
        output = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        return Completion(
            text=output,
            usage=TokenUsage(
                input_tokens=response.usage.input_tokens or 0,
                output_tokens=response.usage.output_tokens or 0,
            ),
        )

    async def _stream_impl(
        self, model: str, messages: List[Message], usage: _UsageAccumulator
    ) -> AsyncIterator[str]:
        params = self._build_params(model, messages)
        params["stream"] = True
        stream = await self.client.messages.create(**params)
        async for event in stream:
            if event.type == "message_start":
                message_usage = getattr(event.message, "usage", None)
                if message_usage is not None:
                    usage.input_tokens = message_usage.input_tokens or 0
            elif event.type == "content_block_delta":
                if getattr(event.delta, "type", None) == "text_delta":
                    yield event.delta.text
            elif event.type == "message_delta":
                delta_usage = getattr(event, "usage", None)
                if delta_usage is not None:
                    usage.output_tokens = delta_usage.output_tokens or 0

    def _build_params(self, model: str, messages: List[Message]) -> Dict[str, Any]:
        system, turns = self._split_system(messages)
        params: Dict[str, Any] = {
            "model": model,
            "max_tokens": self.max_tokens,
            "messages": [self._normalize_message(m) for m in turns],
        }
        if system:
            params["system"] = system
        return params

    def _split_system(self, messages: List[Message]) -> Tuple[Optional[str], List[Message]]:
        """Lift system turns into the top-level ``system`` parameter."""
        system_parts = [m.content for m in messages if m.role == "system"]
        turns = [m for m in messages if m.role != "system"]
        return ("\n\n".join(system_parts) or None), turns

    def _normalize_message(self, message: Message) -> Dict[str, Any]:
        if not message.images:
            return {"role": message.role, "content": message.content}
        content: List[Dict[str, Any]] = [to_anthropic_part(image) for image in message.images]
        if message.content:
            content.append({"type": "text", "text": message.content})
        return {"role": message.role, "content": content}


__all__ = ["AnthropicProvider"]
