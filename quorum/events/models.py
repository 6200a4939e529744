"""
Reasoning step and solve event data models.

This module defines:
- StepAction: Known reasoning-step actions (the vocabulary stays open)
- ReasoningStep: Observable record of one thing an expert or the orchestrator did
- SolveEventType / SolveEvent: Transport-agnostic envelope merging streamed
  content, reasoning steps and token usage into one ordered stream

Design Principles:
- Immutable: steps are facts about the past and never change
- Observational: nothing in the solve depends on who consumes the events
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from quorum.providers.interfaces import TokenUsage


class StepAction:
    """
    Known values for ``ReasoningStep.action``.

    Plain string constants rather than an enum: pipelines may emit their
    own actions and consumers must tolerate unknown ones.
    """

    ANALYZE = "analyze"
    THINK = "think"
    CODE = "code"
    VERIFY = "verify"
    REFINE = "refine"
    GENERATE = "generate"
    ERROR = "error"
    COMPLETE = "complete"
    FAIL = "fail"
    REVIEW = "review"
    PLAN = "plan"
    SCORE = "score"


class ReasoningStep(BaseModel):
    """
    One observable reasoning step.

    Attributes:
        provider: Provider id (or "orchestrator")
        model: Model name (or "multi-model" for orchestrator steps)
        action: Step action, see StepAction
        content: Human-readable description
        token_usage: Usage attributable to this step, if any
        step_number: Strictly increasing within one solve, starting at 1

    Example:
        >>> step = ReasoningStep(
        ...     provider="openai", model="gpt-4o", action=StepAction.CODE,
        ...     content="Executing generated code", step_number=3,
        ... )
    """

    provider: str = Field(..., description="Provider display name")
    model: str = Field(..., description="Model name")
    action: str = Field(..., description="Step action", min_length=1)
    content: str = Field(..., description="Step description")
    token_usage: Optional[TokenUsage] = Field(None, description="Usage for this step")
    step_number: int = Field(..., description="Position within the solve", ge=1)

    model_config = ConfigDict(frozen=True)


class SolveEventType(str, Enum):
    """Kinds of events in a merged solve stream."""

    CONTENT = "content"
    REASONING_STEP = "reasoning_step"
    TOKEN_USAGE = "token_usage"
    DONE = "done"


class SolveEvent(BaseModel):
    """
    Envelope for one item of a merged solve stream.

    Exactly one payload field is set, matching ``type``; ``done`` carries
    the final usage.
    """

    type: SolveEventType = Field(..., description="Event kind")
    content: Optional[str] = Field(None, description="Text fragment for content events")
    step: Optional[ReasoningStep] = Field(None, description="Step for reasoning_step events")
    usage: Optional[TokenUsage] = Field(None, description="Usage for token_usage/done events")

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    def to_json(self) -> str:
        """Serialize to a single JSON line, omitting unset payloads."""
        return self.model_dump_json(exclude_none=True)


__all__ = [
    "ReasoningStep",
    "SolveEvent",
    "SolveEventType",
    "StepAction",
]
