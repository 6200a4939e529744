"""
Event sinks and step emission.

This module provides:
- EventSink Protocol: Receiver for reasoning steps and token-usage updates
- NullEventSink / CollectingEventSink / QueueEventSink: Standard sinks
- StepEmitter: Numbers steps for one solve and forwards them to a sink

Sink errors are logged and never propagate into the solve: consumers
observe a solve, they cannot break it.
"""

import asyncio
from typing import List, Optional, Protocol

from quorum.events.models import ReasoningStep, SolveEvent, SolveEventType
from quorum.observability.logging import get_logger
from quorum.providers.interfaces import TokenUsage

logger = get_logger(__name__)


class EventSink(Protocol):
    """
    Receiver for the observable side-channel of a solve.

    ``on_usage`` receives the running total each time it changes; the
    latest value is authoritative.
    """

    def on_step(self, step: ReasoningStep) -> None:
        ...

    def on_usage(self, usage: TokenUsage) -> None:
        ...


class NullEventSink:
    """Sink that discards everything."""

    def on_step(self, step: ReasoningStep) -> None:
        pass

    def on_usage(self, usage: TokenUsage) -> None:
        pass


class CollectingEventSink:
    """
    Sink that keeps every step and usage update in memory.

    Example:
        >>> sink = CollectingEventSink()
        >>> run = orchestrator.solve("What is 17 * 23?", sink=sink)
        >>> [step.action for step in sink.steps]
        ['analyze', 'think', 'code', 'verify']
    """

    def __init__(self) -> None:
        self.steps: List[ReasoningStep] = []
        self.usage_updates: List[TokenUsage] = []

    def on_step(self, step: ReasoningStep) -> None:
        self.steps.append(step)

    def on_usage(self, usage: TokenUsage) -> None:
        self.usage_updates.append(usage)

    @property
    def last_usage(self) -> Optional[TokenUsage]:
        return self.usage_updates[-1] if self.usage_updates else None


class QueueEventSink:
    """
    Sink that turns steps and usage into SolveEvents on an asyncio.Queue.

    Used by ``Orchestrator.solve_events`` to merge the side-channel with
    streamed content. The queue is unbounded unless ``maxsize`` is given;
    a full bounded queue drops the event with a warning.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: "asyncio.Queue[SolveEvent]" = asyncio.Queue(maxsize=maxsize)

    def on_step(self, step: ReasoningStep) -> None:
        self.put(SolveEvent(type=SolveEventType.REASONING_STEP, step=step))

    def on_usage(self, usage: TokenUsage) -> None:
        self.put(SolveEvent(type=SolveEventType.TOKEN_USAGE, usage=usage))

    def put(self, event: SolveEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("solve_event_dropped", event_type=event.type)


class StepEmitter:
    """
    Assigns step numbers and forwards steps to a sink.

    One emitter exists per solve. All emission happens on the event loop,
    so numbering is strictly increasing without locking.

    Attributes:
        sink: Destination sink
        steps: Every step emitted so far, in order

    Example:
        >>> emitter = StepEmitter(CollectingEventSink())
        >>> emitter.emit("orchestrator", "multi-model", StepAction.ANALYZE, "Task type: structured")
        >>> emitter.emit("OpenAI", "gpt-4o", StepAction.THINK, "Attempt 1/5").step_number
        2
    """

    def __init__(self, sink: Optional[EventSink] = None) -> None:
        self.sink: EventSink = sink if sink is not None else NullEventSink()
        self.steps: List[ReasoningStep] = []
        self._counter = 0

    def emit(
        self,
        provider: str,
        model: str,
        action: str,
        content: str,
        token_usage: Optional[TokenUsage] = None,
    ) -> ReasoningStep:
        self._counter += 1
        step = ReasoningStep(
            provider=provider,
            model=model,
            action=action,
            content=content,
            token_usage=token_usage,
            step_number=self._counter,
        )
        self.steps.append(step)
        try:
            self.sink.on_step(step)
        except Exception:
            logger.exception("event_sink_step_failed", action=action)
        return step

    def usage(self, usage: TokenUsage) -> None:
        try:
            self.sink.on_usage(usage)
        except Exception:
            logger.exception("event_sink_usage_failed")


__all__ = [
    "CollectingEventSink",
    "EventSink",
    "NullEventSink",
    "QueueEventSink",
    "StepEmitter",
]
