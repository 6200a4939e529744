"""Tests for reasoning steps, sinks and solve events."""

import asyncio
import json

import pytest

from quorum.events import (
    CollectingEventSink,
    QueueEventSink,
    ReasoningStep,
    SolveEvent,
    SolveEventType,
    StepAction,
    StepEmitter,
)
from quorum.providers.interfaces import TokenUsage


class BrokenSink:
    def on_step(self, step):
        raise RuntimeError("sink is down")

    def on_usage(self, usage):
        raise RuntimeError("sink is down")


def test_emitter_numbers_steps_from_one():
    sink = CollectingEventSink()
    emitter = StepEmitter(sink)

    first = emitter.emit("orchestrator", "multi-model", StepAction.ANALYZE, "classified")
    second = emitter.emit("OpenAI", "gpt-4o", StepAction.THINK, "starting")

    assert (first.step_number, second.step_number) == (1, 2)
    assert sink.steps == [first, second]
    assert emitter.steps == sink.steps


def test_emitter_without_sink():
    emitter = StepEmitter()
    emitter.emit("OpenAI", "gpt-4o", StepAction.CODE, "attempt 1")
    emitter.usage(TokenUsage(input_tokens=1))
    assert len(emitter.steps) == 1


def test_sink_errors_do_not_propagate():
    emitter = StepEmitter(BrokenSink())
    step = emitter.emit("OpenAI", "gpt-4o", StepAction.ERROR, "boom")
    emitter.usage(TokenUsage(input_tokens=1))
    assert step.step_number == 1


def test_reasoning_step_is_immutable():
    step = ReasoningStep(provider="OpenAI", model="gpt-4o", action="think", content="x", step_number=1)
    with pytest.raises(Exception):
        step.content = "changed"
    with pytest.raises(ValueError):
        ReasoningStep(provider="OpenAI", model="gpt-4o", action="think", content="x", step_number=0)


def test_collecting_sink_last_usage():
    sink = CollectingEventSink()
    assert sink.last_usage is None
    sink.on_usage(TokenUsage(input_tokens=1))
    sink.on_usage(TokenUsage(input_tokens=3))
    assert sink.last_usage == TokenUsage(input_tokens=3)


@pytest.mark.asyncio
async def test_queue_sink_wraps_events():
    sink = QueueEventSink()
    emitter = StepEmitter(sink)
    emitter.emit("OpenAI", "gpt-4o", StepAction.VERIFY, "ok")
    emitter.usage(TokenUsage(input_tokens=2, output_tokens=1))

    step_event = await sink.queue.get()
    usage_event = await sink.queue.get()
    assert step_event.type == SolveEventType.REASONING_STEP
    assert step_event.step.content == "ok"
    assert usage_event.type == SolveEventType.TOKEN_USAGE
    assert usage_event.usage.total_tokens == 3


@pytest.mark.asyncio
async def test_bounded_queue_drops_when_full():
    sink = QueueEventSink(maxsize=1)
    sink.put(SolveEvent(type=SolveEventType.CONTENT, content="a"))
    sink.put(SolveEvent(type=SolveEventType.CONTENT, content="b"))
    assert sink.queue.qsize() == 1
    assert (await asyncio.wait_for(sink.queue.get(), 1)).content == "a"


def test_solve_event_json_omits_unset_payloads():
    event = SolveEvent(type=SolveEventType.DONE, usage=TokenUsage(input_tokens=5, output_tokens=2))
    payload = json.loads(event.to_json())
    assert payload == {"type": "done", "usage": {"input_tokens": 5, "output_tokens": 2}}
