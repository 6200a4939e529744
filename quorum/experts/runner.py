"""
Expert Runner

Drives one provider through a task. ``run`` is the verified mode: the
model must answer with Python code, the code is executed in the sandbox and
failures are fed back until the attempt budget runs out. ``run_chat`` is a
single unverified call for open-ended turns.

Both entry points turn every failure into a result object; nothing but
cancellation escapes.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Callable, List, Optional, Sequence

from quorum.consensus.canonical import canonicalize_answer, extract_final_answer
from quorum.events.models import StepAction
from quorum.events.sink import StepEmitter
from quorum.experts.models import ExpertResult, Transcript
from quorum.observability.logging import get_logger
from quorum.observability.metrics import increment_counter, record_histogram
from quorum.providers.interfaces import LLMProvider, Message, ProviderHandle, TokenUsage
from quorum.sandbox.executor import ExecutionResult, SandboxExecutor

logger = get_logger(__name__)

NO_CODE_FEEDBACK = (
    "Error: No Python code block found. Please provide your solution as Python code "
    "wrapped in ```python code blocks with print() statements."
)

_PYTHON_BLOCK_RE = re.compile(r"```python\n([\s\S]*?)```")
_PLAIN_BLOCK_RE = re.compile(r"```\n([\s\S]*?)```")
_ANY_BLOCK_RE = re.compile(r"```[\s\S]*?```")

# Step content previews are cut to this many characters.
_PREVIEW = 100


class ExpertState(str, Enum):
    """States of the verified expert loop."""

    GENERATING = "generating"
    EXECUTING = "executing"
    DONE = "done"


def extract_code(response: str) -> Optional[str]:
    """
    Return the code of the first ```python block, else the first untagged block.

    Blocks tagged with another language are ignored. Empty blocks count as
    no code.
    """
    for pattern in (_PYTHON_BLOCK_RE, _PLAIN_BLOCK_RE):
        match = pattern.search(response)
        if match:
            code = match.group(1).strip()
            return code or None
    return None


def execution_feedback(output: str) -> str:
    return f"Error from code execution:\n{output}\n\nPlease fix the code and try again."


def format_success_response(response: str, execution_output: str) -> str:
    """Keep the explanatory prose, drop code blocks and append the verified output."""
    explanation = _ANY_BLOCK_RE.sub("", response).strip()
    result = f"**Result:**\n```\n{execution_output}\n```"
    if explanation:
        return f"{explanation}\n\n{result}"
    return result


class ExpertRunner:
    """
    One provider working on one task.

    Attributes:
        handle: Provider identity and model
        provider: Adapter used for every call
        sandbox: Executor for generated code
        max_retries: Attempt budget of the verified loop
        emitter: Destination of reasoning steps
        on_usage: Called with the usage of every completed provider call

    Example:
        >>> runner = ExpertRunner(handle, provider, SandboxExecutor(), max_retries=5)
        >>> result = await runner.run([Message(role="user", content="What is 17 * 23?")])
        >>> result.canonical_answer
        '391'
    """

    def __init__(
        self,
        handle: ProviderHandle,
        provider: LLMProvider,
        sandbox: SandboxExecutor,
        *,
        max_retries: int = 5,
        emitter: Optional[StepEmitter] = None,
        on_usage: Optional[Callable[[TokenUsage], None]] = None,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.handle = handle
        self.provider = provider
        self.sandbox = sandbox
        self.max_retries = max_retries
        self.emitter = emitter or StepEmitter()
        self.on_usage = on_usage
        self.logger = logger.bind(provider=handle.id, model=handle.model)

    async def run(self, messages: Sequence[Message]) -> ExpertResult:
        """Solve with code execution and retries."""
        transcript = Transcript.of(messages)
        spent: List[TokenUsage] = []
        attempts = 0
        last_error = ""
        state = ExpertState.GENERATING
        response = ""
        execution_output: Optional[str] = None

        self._step(StepAction.THINK, f"Expert {self.handle.name} starting (max {self.max_retries} attempts)")

        while state != ExpertState.DONE:
            if attempts >= self.max_retries:
                state = ExpertState.DONE
                break

            attempts += 1
            self._step(StepAction.CODE, f"Attempt {attempts}/{self.max_retries}: Generating solution...")
            self.logger.info("expert_attempt_started", attempt=attempts, max_attempts=self.max_retries)

            try:
                response = await self._collect(transcript.messages, spent)
            except Exception as exc:
                last_error = str(exc) or type(exc).__name__
                self.logger.warning("expert_provider_error", attempt=attempts, error=last_error)
                self._step(StepAction.ERROR, f"API error: {last_error}")
                continue

            code = extract_code(response)
            if code is None:
                last_error = "No Python code block found"
                self._step(StepAction.ERROR, "No Python code block found. Retrying...")
                transcript = transcript.extend(response, NO_CODE_FEEDBACK)
                continue

            state = ExpertState.EXECUTING
            try:
                execution = await self.sandbox.execute(code)
            except Exception as exc:
                self.logger.warning("expert_sandbox_error", attempt=attempts, error=str(exc))
                execution = ExecutionResult(success=False, output=f"Error: {exc}")
            if execution.success:
                self._step(StepAction.VERIFY, f"Code executed successfully: {execution.output[:_PREVIEW]}")
                execution_output = execution.output
                state = ExpertState.DONE
            else:
                last_error = execution.output
                self._step(StepAction.ERROR, f"Execution failed: {execution.output[:_PREVIEW]}")
                transcript = transcript.extend(response, execution_feedback(execution.output))
                state = ExpertState.GENERATING

        solved = execution_output is not None
        usage = sum(spent, TokenUsage())
        increment_counter(
            "expert_runs_total", labels={"mode": "verify", "outcome": "success" if solved else "failure"}
        )
        record_histogram("expert_iterations", attempts)
        self.logger.info("expert_finished", success=solved, attempts=attempts)

        if solved:
            return self._result(
                response=format_success_response(response, execution_output),
                canonical=canonicalize_answer(execution_output),
                success=True,
                iterations=attempts,
                usage=usage,
                execution_output=execution_output,
            )
        return self._result(
            response=response,
            canonical=canonicalize_answer(response or last_error),
            success=False,
            iterations=attempts,
            usage=usage,
            error=last_error,
        )

    async def run_chat(self, messages: Sequence[Message]) -> ExpertResult:
        """Single unverified call; failures are returned, not raised."""
        self._step(StepAction.THINK, f"Expert {self.handle.name} generating response...")
        spent: List[TokenUsage] = []
        try:
            response = await self._collect(messages, spent)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            self.logger.warning("expert_chat_failed", error=error)
            self._step(StepAction.ERROR, f"API error: {error}")
            increment_counter("expert_runs_total", labels={"mode": "chat", "outcome": "failure"})
            return self._result(response="", canonical="", success=False, iterations=1,
                                usage=sum(spent, TokenUsage()), error=error)

        increment_counter("expert_runs_total", labels={"mode": "chat", "outcome": "success"})
        return self._result(
            response=response,
            canonical=canonicalize_answer(extract_final_answer(response)),
            success=True,
            iterations=1,
            usage=sum(spent, TokenUsage()),
        )

    async def _collect(self, messages: Sequence[Message], spent: List[TokenUsage]) -> str:
        """Stream a full response, appending its usage to ``spent`` even when it fails."""

        def record(usage: TokenUsage) -> None:
            spent.append(usage)
            if self.on_usage is not None:
                self.on_usage(usage)

        fragments = []
        async for fragment in self.provider.stream(self.handle.model, messages, on_usage=record):
            fragments.append(fragment)
        return "".join(fragments)

    def _step(self, action: str, content: str) -> None:
        self.emitter.emit(self.handle.id, self.handle.model, action, content)

    def _result(
        self,
        *,
        response: str,
        canonical: str,
        success: bool,
        iterations: int,
        usage: TokenUsage,
        execution_output: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ExpertResult:
        return ExpertResult(
            provider_id=self.handle.id,
            provider_name=self.handle.name,
            model=self.handle.model,
            response=response,
            canonical_answer=canonical,
            success=success,
            iterations=iterations,
            usage=usage,
            execution_output=execution_output,
            error=error,
        )


__all__ = [
    "ExpertRunner",
    "ExpertState",
    "NO_CODE_FEEDBACK",
    "execution_feedback",
    "extract_code",
    "format_success_response",
]
