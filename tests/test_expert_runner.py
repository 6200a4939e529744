"""Tests for the expert runner's verified loop and chat mode."""

import pytest

from conftest import ScriptedProvider, ScriptedSandbox, handle, python_answer
from quorum.events.models import StepAction
from quorum.events.sink import CollectingEventSink, StepEmitter
from quorum.experts.runner import (
    NO_CODE_FEEDBACK,
    ExpertRunner,
    execution_feedback,
    extract_code,
    format_success_response,
)
from quorum.providers.interfaces import Message, TokenUsage
from quorum.sandbox.executor import ExecutionResult, SandboxExecutor

TASK = [Message(role="user", content="What is 17 * 23?")]

OK_391 = ExecutionResult(success=True, output="391")


def make_runner(provider, sandbox, sink=None, max_retries=3, usage_log=None):
    return ExpertRunner(
        handle("openai", "OpenAI"),
        provider,
        sandbox,
        max_retries=max_retries,
        emitter=StepEmitter(sink),
        on_usage=usage_log.append if usage_log is not None else None,
    )


def test_extract_code_prefers_python_blocks():
    text = "```\nplain\n```\n```python\nprint(1)\n```"
    assert extract_code(text) == "print(1)"


def test_extract_code_falls_back_to_untagged_block():
    assert extract_code("Try:\n```\nprint(2)\n```") == "print(2)"


def test_extract_code_ignores_other_languages_and_empty_blocks():
    assert extract_code("```js\nconsole.log(1)\n```") is None
    assert extract_code("```python\n\n```") is None
    assert extract_code("no code at all") is None


def test_format_success_response_keeps_prose_and_drops_code():
    formatted = format_success_response(python_answer("17 * 23"), "391")
    assert formatted == "Here is the solution.\n\n**Result:**\n```\n391\n```"
    assert format_success_response("```python\nprint(1)\n```", "1") == "**Result:**\n```\n1\n```"


@pytest.mark.asyncio
async def test_solves_on_first_attempt():
    sink = CollectingEventSink()
    provider = ScriptedProvider([python_answer("17 * 23")])
    sandbox = ScriptedSandbox([OK_391])

    result = await make_runner(provider, sandbox, sink).run(TASK)

    assert result.success is True
    assert result.iterations == 1
    assert result.canonical_answer == "391"
    assert result.execution_output == "391"
    assert result.usage == TokenUsage(input_tokens=10, output_tokens=5)
    assert "**Result:**\n```\n391\n```" in result.response
    assert sandbox.executed == ["print(17 * 23)"]
    assert [s.action for s in sink.steps] == [StepAction.THINK, StepAction.CODE, StepAction.VERIFY]
    assert sink.steps[0].content == "Expert OpenAI starting (max 3 attempts)"
    assert sink.steps[1].content == "Attempt 1/3: Generating solution..."


@pytest.mark.asyncio
async def test_missing_code_block_is_fed_back():
    sink = CollectingEventSink()
    provider = ScriptedProvider(["It is 391.", python_answer("17 * 23")])
    sandbox = ScriptedSandbox([OK_391])

    result = await make_runner(provider, sandbox, sink).run(TASK)

    assert result.success is True
    assert result.iterations == 2
    second_call = provider.calls[1]
    assert len(second_call) == len(TASK) + 2
    assert second_call[-2] == Message(role="assistant", content="It is 391.")
    assert second_call[-1] == Message(role="user", content=NO_CODE_FEEDBACK)
    assert "No Python code block found. Retrying..." in [s.content for s in sink.steps]
    assert result.usage == TokenUsage(input_tokens=20, output_tokens=10)


@pytest.mark.asyncio
async def test_execution_failure_is_fed_back():
    provider = ScriptedProvider([python_answer("x"), python_answer("17 * 23")])
    failure = ExecutionResult(success=False, output="NameError: name 'x' is not defined")
    sandbox = ScriptedSandbox([failure, OK_391])

    result = await make_runner(provider, sandbox).run(TASK)

    assert result.success is True
    assert result.iterations == 2
    assert provider.calls[1][-1].content == execution_feedback(failure.output)


@pytest.mark.asyncio
async def test_provider_error_consumes_an_attempt():
    sink = CollectingEventSink()
    provider = ScriptedProvider([RuntimeError("boom"), python_answer("17 * 23")])
    sandbox = ScriptedSandbox([OK_391])
    usage_log = []

    result = await make_runner(provider, sandbox, sink, usage_log=usage_log).run(TASK)

    assert result.success is True
    assert result.iterations == 2
    assert "API error: boom" in [s.content for s in sink.steps]
    # The failed stream still reports its usage.
    assert len(usage_log) == 2
    assert result.usage == TokenUsage(input_tokens=20, output_tokens=10)


@pytest.mark.asyncio
async def test_budget_exhausted():
    provider = ScriptedProvider(["I refuse to write code."])
    sandbox = ScriptedSandbox([OK_391])

    result = await make_runner(provider, sandbox, max_retries=3).run(TASK)

    assert result.success is False
    assert result.iterations == 3
    assert len(provider.calls) == 3
    assert result.error == "No Python code block found"
    assert result.response == "I refuse to write code."
    assert result.canonical_answer == "i refuse to write code."
    assert result.execution_output is None
    assert sandbox.executed == []


@pytest.mark.asyncio
async def test_all_attempts_fail_with_provider_errors():
    provider = ScriptedProvider([RuntimeError("service unavailable")])
    result = await make_runner(provider, ScriptedSandbox([OK_391]), max_retries=2).run(TASK)

    assert result.success is False
    assert result.iterations == 2
    assert result.error == "service unavailable"


def test_max_retries_must_be_positive():
    with pytest.raises(ValueError):
        make_runner(ScriptedProvider(["x"]), ScriptedSandbox([OK_391]), max_retries=0)


@pytest.mark.asyncio
async def test_run_chat_extracts_final_answer():
    provider = ScriptedProvider(["Let me see.\n**Answer:** Paris\nIt is on the Seine."])
    result = await make_runner(provider, ScriptedSandbox([OK_391])).run_chat(TASK)

    assert result.success is True
    assert result.iterations == 1
    assert result.canonical_answer == "paris"
    assert result.response.startswith("Let me see.")


@pytest.mark.asyncio
async def test_run_chat_failure_returns_result():
    sink = CollectingEventSink()
    provider = ScriptedProvider([RuntimeError("down")])
    result = await make_runner(provider, ScriptedSandbox([OK_391]), sink).run_chat(TASK)

    assert result.success is False
    assert result.error == "down"
    assert result.usage == TokenUsage(input_tokens=10, output_tokens=5)
    assert sink.steps[-1].action == StepAction.ERROR


@pytest.mark.asyncio
@pytest.mark.integration
async def test_verified_run_with_real_sandbox(tmp_path):
    provider = ScriptedProvider([python_answer("17 * 23")])
    sandbox = SandboxExecutor(timeout=10.0, temp_dir=tmp_path)

    result = await make_runner(provider, sandbox).run(TASK)

    assert result.success is True
    assert result.canonical_answer == "391"


class RaisingSandbox:
    """Sandbox that blows up on the first execution, then succeeds."""

    def __init__(self):
        self.calls = 0

    async def execute(self, code):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("disk full")
        return OK_391


@pytest.mark.asyncio
async def test_sandbox_exception_drives_next_attempt():
    sink = CollectingEventSink()
    provider = ScriptedProvider([python_answer("17 * 23")])
    sandbox = RaisingSandbox()

    result = await make_runner(provider, sandbox, sink).run(TASK)

    assert result.success is True
    assert result.iterations == 2
    assert sandbox.calls == 2
    assert "Execution failed: Error: disk full" in [s.content for s in sink.steps]
    assert "Error: disk full" in provider.calls[1][-1].content


@pytest.mark.asyncio
async def test_steps_carry_provider_id():
    sink = CollectingEventSink()
    await make_runner(ScriptedProvider([python_answer("17 * 23")]), ScriptedSandbox([OK_391]), sink).run(TASK)
    assert {s.provider for s in sink.steps} == {"openai"}
