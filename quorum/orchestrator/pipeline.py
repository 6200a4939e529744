"""
Domain Pipelines

A domain pipeline replaces the generic consensus path for prompts in a
specialised domain. Pipelines are matched by a keyword trigger, run their
own fixed multi-phase workflow on the same expert machinery, and rank
candidates with a deterministic rubric instead of voting.

The trigger is a heuristic; pipelines are passed to the orchestrator
explicitly so they can be replaced or disabled.
"""

from __future__ import annotations

import asyncio
import re
from typing import AsyncIterator, Callable, Dict, List, Protocol, Sequence

from pydantic import BaseModel, Field

from quorum.events.models import StepAction
from quorum.events.sink import StepEmitter
from quorum.experts.models import ExpertResult
from quorum.experts.runner import ExpertRunner
from quorum.observability.logging import get_logger
from quorum.providers.interfaces import Message

logger = get_logger(__name__)


class PipelineContext:
    """
    What a pipeline gets from the orchestrator for one solve.

    Attributes:
        runners: One expert runner per usable provider
        emitter: Step emitter of the solve
        stream: Turns a finished answer into paced chunks
        results: Pipelines append every expert result they produce here
    """

    def __init__(
        self,
        runners: List[ExpertRunner],
        emitter: StepEmitter,
        stream: Callable[[str], AsyncIterator[str]],
    ):
        self.runners = runners
        self.emitter = emitter
        self.stream = stream
        self.results: List[ExpertResult] = []


class DomainPipeline(Protocol):
    """Interface of a domain pipeline."""

    name: str

    def matches(self, text: str) -> bool:
        ...

    def run(self, messages: Sequence[Message], context: PipelineContext) -> AsyncIterator[str]:
        ...


# ============================================================================
# Pine Script pipeline
# ============================================================================

PINE_KEYWORDS = (
    "pine script",
    "pinescript",
    "pine-script",
    "tradingview",
    "//@version",
    "strategy.entry",
    "strategy.exit",
    "ta.crossover",
    "ta.crossunder",
)

ANALYST_PROMPT = """You are a trading strategy analyst who prepares specifications for TradingView Pine Script developers.

Read the request and write a short implementation plan:
1. Script type (strategy or indicator) and the Pine Script version to use (v5 or later)
2. Inputs the user should be able to tune, with defaults
3. Indicators and calculations, named by their ta.* functions
4. Entry and exit conditions, or what gets plotted
5. Edge cases such as warm-up bars and repainting

Do not write code. Reply with the plan only."""

CODER_PROMPT = """You are an expert TradingView Pine Script developer.

Implement the plan below as a complete, compilable script:
- Start with a //@version=5 (or later) directive
- Declare the script with strategy() or indicator()
- Expose tunable values with input.* functions
- Use the ta.* namespace for technical indicators
- Use strategy.entry/strategy.exit for trades, or plot() for indicators
- Never use the deprecated study() or security() calls

Return the script in a single ```pinescript code block followed by a short explanation.

Plan:
{plan}"""

_CODE_BLOCK_RE = re.compile(r"```[\w-]*\n([\s\S]*?)```")
_VERSION_RE = re.compile(r"//@version\s*=\s*(\d+)")
_DEPRECATED_RE = re.compile(r"(?<![\w.])(?:study|security)\s*\(")


class PineScore(BaseModel):
    """Rubric result for one candidate script."""

    total: int = Field(..., description="Weighted score")
    checks: Dict[str, bool] = Field(default_factory=dict, description="Rubric checks")


_RUBRIC = (
    ("version_directive", 2),
    ("declaration", 2),
    ("entry_or_plot", 1),
    ("exit_or_plot", 1),
    ("inputs", 1),
    ("ta_namespace", 1),
    ("no_deprecated_calls", 2),
)


def extract_script(response: str) -> str:
    match = _CODE_BLOCK_RE.search(response)
    return match.group(1).strip() if match else response.strip()


def score_pine_script(source: str) -> PineScore:
    """
    Score a Pine Script candidate.

    Example:
        >>> score_pine_script('//@version=5\\nindicator("x")\\nplot(ta.sma(close, input.int(14)))').total
        10
    """
    version = _VERSION_RE.search(source)
    checks = {
        "version_directive": bool(version and int(version.group(1)) >= 5),
        "declaration": bool(re.search(r"\b(?:strategy|indicator)\s*\(", source)),
        "entry_or_plot": "strategy.entry(" in source or "plot(" in source,
        "exit_or_plot": "strategy.exit(" in source or "strategy.close(" in source or "plot(" in source,
        "inputs": "input." in source or "input(" in source,
        "ta_namespace": "ta." in source,
        "no_deprecated_calls": not _DEPRECATED_RE.search(source),
    }
    total = sum(weight for name, weight in _RUBRIC if checks[name])
    return PineScore(total=total, checks=checks)


class PineScriptPipeline:
    """
    Analyst plan, coder implementation and rubric validation for
    TradingView Pine Script requests.

    Every provider runs both phases independently and in parallel; the
    highest-scoring script wins, earlier providers winning ties.
    """

    name = "pine_script"

    def __init__(self, keywords: Sequence[str] = PINE_KEYWORDS):
        self.keywords = tuple(k.lower() for k in keywords)

    def matches(self, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in self.keywords)

    async def run(self, messages: Sequence[Message], context: PipelineContext) -> AsyncIterator[str]:
        emitter = context.emitter
        if not context.runners:
            yield "Error: No provider could be initialised for the Pine Script pipeline."
            return

        emitter.emit(
            "orchestrator", "multi-model", StepAction.ANALYZE,
            f"Pine Script request detected; running analyst and coder phases on "
            f"{len(context.runners)} model(s)",
        )

        candidates = await asyncio.gather(
            *(self._candidate(runner, messages) for runner in context.runners)
        )
        for plan, implementation in candidates:
            context.results.extend(r for r in (plan, implementation) if r is not None)

        scored = []
        for _, implementation in candidates:
            if implementation is not None and implementation.success:
                scored.append((score_pine_script(extract_script(implementation.response)), implementation))

        if not scored:
            emitter.emit("orchestrator", "multi-model", StepAction.FAIL,
                         "No model produced a Pine Script implementation")
            yield (
                f"All {len(context.runners)} experts failed to produce a Pine Script implementation. "
                "Please try again."
            )
            return

        emitter.emit(
            "orchestrator", "multi-model", StepAction.SCORE,
            "; ".join(f"{r.provider_name}: {s.total}/{sum(w for _, w in _RUBRIC)}" for s, r in scored),
        )
        best_score, best = max(scored, key=lambda pair: pair[0].total)
        logger.info("pine_script_selected", provider=best.provider_id, score=best_score.total)
        emitter.emit(
            "orchestrator", "multi-model", StepAction.COMPLETE,
            f"Selected {best.provider_name} implementation (score {best_score.total})",
        )

        async for chunk in context.stream(best.response):
            yield chunk

    async def _candidate(
        self, runner: ExpertRunner, messages: Sequence[Message]
    ) -> tuple[ExpertResult, ExpertResult | None]:
        conversation = [m for m in messages if m.role != "system"]
        plan = await runner.run_chat([Message(role="system", content=ANALYST_PROMPT), *conversation])
        if not plan.success:
            return plan, None
        runner.emitter.emit(runner.handle.id, runner.handle.model, StepAction.PLAN, plan.response[:500])
        implementation = await runner.run_chat(
            [Message(role="system", content=CODER_PROMPT.format(plan=plan.response)), *conversation]
        )
        return plan, implementation


__all__ = [
    "DomainPipeline",
    "PineScore",
    "PineScriptPipeline",
    "PipelineContext",
    "extract_script",
    "score_pine_script",
]
