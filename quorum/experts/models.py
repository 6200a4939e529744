"""
Expert result and transcript models.
"""

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from quorum.providers.interfaces import Message, TokenUsage


class ExpertResult(BaseModel):
    """
    Outcome of one expert's attempt at a task.

    Attributes:
        provider_id: Provider identifier
        provider_name: Provider display name
        model: Model that produced the answer
        response: Raw (or formatted, when verified) response text
        canonical_answer: Normalized answer used for consensus
        success: Whether the expert produced a usable answer
        iterations: Attempts used
        usage: Usage accumulated across every attempt
        execution_output: Sandbox output of the verified solution
        error: Last error when unsuccessful

    Example:
        >>> result = ExpertResult(
        ...     provider_id="openai", provider_name="OpenAI", model="gpt-4o",
        ...     response="391", canonical_answer="391", success=True, iterations=1,
        ... )
    """

    provider_id: str = Field(..., description="Provider identifier")
    provider_name: str = Field(..., description="Provider display name")
    model: str = Field(..., description="Model name")
    response: str = Field("", description="Response text")
    canonical_answer: str = Field("", description="Canonical answer")
    success: bool = Field(..., description="Whether the expert succeeded")
    iterations: int = Field(1, description="Attempts used", ge=0)
    usage: TokenUsage = Field(default_factory=TokenUsage, description="Accumulated usage")
    execution_output: Optional[str] = Field(None, description="Verified execution output")
    error: Optional[str] = Field(None, description="Last error")

    model_config = ConfigDict(frozen=True)


class Transcript(BaseModel):
    """
    Immutable conversation threaded through expert retries.

    Every failed attempt produces a new transcript two messages longer:
    the assistant's response and the corrective user turn.

    Example:
        >>> t = Transcript.of([Message(role="user", content="2+2?")])
        >>> len(t.extend("no code", "Please use code"))
        3
    """

    messages: Tuple[Message, ...] = Field(default_factory=tuple)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def of(cls, messages) -> "Transcript":
        return cls(messages=tuple(messages))

    def extend(self, assistant_text: str, feedback: str) -> "Transcript":
        return Transcript(
            messages=self.messages
            + (
                Message(role="assistant", content=assistant_text),
                Message(role="user", content=feedback),
            )
        )

    def __len__(self) -> int:
        return len(self.messages)


__all__ = ["ExpertResult", "Transcript"]
