"""
Reasoning-step events for Quorum solves.

Exports:
- ReasoningStep, StepAction: Step model and known actions
- SolveEvent, SolveEventType: Merged stream envelope
- EventSink and the standard sinks
- StepEmitter: Per-solve step numbering

Example:
    >>> from quorum.events import CollectingEventSink
    >>> sink = CollectingEventSink()
    >>> async for fragment in orchestrator.solve("2 + 2?", sink=sink):
    ...     print(fragment, end="")
    >>> print(len(sink.steps))
"""

from quorum.events.models import ReasoningStep, SolveEvent, SolveEventType, StepAction
from quorum.events.sink import (
    CollectingEventSink,
    EventSink,
    NullEventSink,
    QueueEventSink,
    StepEmitter,
)

__all__ = [
    "CollectingEventSink",
    "EventSink",
    "NullEventSink",
    "QueueEventSink",
    "ReasoningStep",
    "SolveEvent",
    "SolveEventType",
    "StepAction",
    "StepEmitter",
]
