"""
Task Router

Classifies a task as structured (a single checkable answer: arithmetic,
code, formatting, enumeration) or open-ended (explanation, opinion,
creative writing), and maps the classification to a consensus strategy.
"""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path
from typing import List, Sequence, Union

import yaml
from pydantic import BaseModel, Field

from quorum.providers.interfaces import Message


class TaskType(str, Enum):
    """Task classification."""

    STRUCTURED = "structured"
    OPEN_ENDED = "open_ended"


class ConsensusStrategy(str, Enum):
    """Consensus strategy used to aggregate expert answers."""

    EXACT = "exact"
    SEMANTIC = "semantic"


# Accepted values for the ``mode`` argument: a strategy name or "auto".
CONSENSUS_MODES = ("auto", "exact", "semantic")

DEFAULT_STRUCTURED_KEYWORDS = [
    "calculate", "compute", "solve", "what is", "how many", "how much",
    "find the", "determine", "evaluate", "simplify", "factor",
    "python", "code", "program", "algorithm", "function",
    "math", "equation", "formula", "proof",
    "json", "xml", "parse", "format",
    "convert", "translate to",
    "list all", "enumerate", "count",
    "true or false", "yes or no",
    "regex", "pattern match",
]

DEFAULT_OPEN_ENDED_KEYWORDS = [
    "explain", "describe", "discuss", "analyze", "compare",
    "what do you think", "opinion", "perspective",
    "summarize", "overview", "introduction",
    "how would you", "suggest", "recommend",
    "creative", "story", "poem", "essay",
    "brainstorm", "ideas for", "ways to",
    "pros and cons", "advantages", "disadvantages",
    "why do", "what are the reasons",
]

_DIGITS_RE = re.compile(r"\d")


class RouterConfig(BaseModel):
    """
    Configuration for task classification heuristics.

    Keyword lists can be customized without code changes, loaded from a
    YAML file (``router:`` section) or from environment variables.

    Attributes:
        structured_keywords: Substrings indicating a structured task
        open_ended_keywords: Substrings indicating an open-ended task
        code_block_weight: Structured score added for a fenced code block
        short_text_length: Texts shorter than this count as short
        short_numeric_weight: Structured score added for digits in short text

    Example:
        >>> config = RouterConfig(structured_keywords=["calculate", "sql"])
        >>> TaskRouter(config).classify("Write SQL for this") == TaskType.STRUCTURED
        True
    """

    structured_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_STRUCTURED_KEYWORDS),
        description="Keywords indicating structured tasks",
    )
    open_ended_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_OPEN_ENDED_KEYWORDS),
        description="Keywords indicating open-ended tasks",
    )
    code_block_weight: int = Field(2, description="Weight of a fenced code block", ge=0)
    short_text_length: int = Field(100, description="Short text threshold", ge=1)
    short_numeric_weight: int = Field(1, description="Weight of digits in short text", ge=0)

    @classmethod
    def from_yaml(cls, path: Path) -> "RouterConfig":
        """
        Load configuration from YAML file.

        A missing file yields the defaults.

        Example:
            >>> config = RouterConfig.from_yaml(Path("config/router.yml"))
        """
        if not path.exists():
            return cls()

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data.get("router", {}))

    @classmethod
    def from_env(cls) -> "RouterConfig":
        """
        Load configuration from environment variables.

        Environment variables:
            QUORUM_ROUTER_STRUCTURED_KEYWORDS: Comma-separated keywords
            QUORUM_ROUTER_OPEN_ENDED_KEYWORDS: Comma-separated keywords
        """
        kwargs = {}

        if structured := os.getenv("QUORUM_ROUTER_STRUCTURED_KEYWORDS"):
            kwargs["structured_keywords"] = [k.strip().lower() for k in structured.split(",") if k.strip()]

        if open_ended := os.getenv("QUORUM_ROUTER_OPEN_ENDED_KEYWORDS"):
            kwargs["open_ended_keywords"] = [k.strip().lower() for k in open_ended.split(",") if k.strip()]

        return cls(**kwargs) if kwargs else cls()


class TaskRouter:
    """
    Keyword-scoring task classifier.

    Classification is a pure function of the text and the configuration.

    Example:
        >>> router = TaskRouter()
        >>> router.classify("What is 17 * 23?")
        <TaskType.STRUCTURED: 'structured'>
        >>> router.select_consensus_strategy(TaskType.STRUCTURED, "auto")
        <ConsensusStrategy.EXACT: 'exact'>
    """

    def __init__(self, config: RouterConfig | None = None):
        self.config = config or RouterConfig()

    def classify(self, task: Union[str, Sequence[Message]]) -> TaskType:
        """Classify a task string or a message history (user turns only)."""
        text = self.extract_text(task).lower()
        structured, open_ended = self.score(text)

        if structured > open_ended:
            return TaskType.STRUCTURED
        if open_ended > structured:
            return TaskType.OPEN_ENDED

        is_short = len(text) < self.config.short_text_length
        if is_short and text.strip().endswith("?"):
            return TaskType.STRUCTURED
        return TaskType.OPEN_ENDED

    def score(self, text: str) -> tuple[int, int]:
        """Return (structured, open_ended) scores for lowercased text."""
        structured = sum(1 for keyword in self.config.structured_keywords if keyword in text)
        open_ended = sum(1 for keyword in self.config.open_ended_keywords if keyword in text)

        if "```" in text:
            structured += self.config.code_block_weight
        if len(text) < self.config.short_text_length and _DIGITS_RE.search(text):
            structured += self.config.short_numeric_weight

        return structured, open_ended

    def select_consensus_strategy(self, task_type: TaskType, mode: str = "auto") -> ConsensusStrategy:
        """
        Pick the consensus strategy.

        An explicit ``exact`` or ``semantic`` mode always wins; ``auto`` maps
        structured tasks to exact matching and open-ended tasks to semantic
        clustering.

        Raises:
            ValueError: If mode is not one of auto/exact/semantic
        """
        if mode not in CONSENSUS_MODES:
            raise ValueError(f"Unknown consensus mode: {mode!r}")
        if mode != "auto":
            return ConsensusStrategy(mode)
        if task_type == TaskType.STRUCTURED:
            return ConsensusStrategy.EXACT
        return ConsensusStrategy.SEMANTIC

    @staticmethod
    def extract_text(task: Union[str, Sequence[Message]]) -> str:
        if isinstance(task, str):
            return task
        return "\n".join(message.content for message in task if message.role == "user")


__all__ = [
    "CONSENSUS_MODES",
    "ConsensusStrategy",
    "RouterConfig",
    "TaskRouter",
    "TaskType",
]
