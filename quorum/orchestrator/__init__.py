"""
Orchestration of multi-expert solves.

Exports:
- Orchestrator / SolveRun: solve entry points
- Conversation helpers for sliding-window context and rolling summaries
- Domain pipelines and the review/enhanced response splitter
"""

from quorum.orchestrator.conversation import (
    ConversationSummary,
    build_context,
    build_summary_prompt,
    should_summarize,
)
from quorum.orchestrator.orchestrator import NO_PROVIDERS_MESSAGE, Orchestrator, SolveRun
from quorum.orchestrator.pipeline import (
    DomainPipeline,
    PineScriptPipeline,
    PipelineContext,
    score_pine_script,
)
from quorum.orchestrator.response_parser import ParsedResponse, split_review

__all__ = [
    "ConversationSummary",
    "DomainPipeline",
    "NO_PROVIDERS_MESSAGE",
    "Orchestrator",
    "ParsedResponse",
    "PineScriptPipeline",
    "PipelineContext",
    "SolveRun",
    "build_context",
    "build_summary_prompt",
    "score_pine_script",
    "should_summarize",
    "split_review",
]
