"""
Orchestrator

Entry point of a solve: picks the execution path, fans experts out in
parallel, aggregates their answers and streams the winner back. Reasoning
steps and token usage travel through an EventSink; the text itself is the
iteration of the returned SolveRun.

Nothing raises to the caller: missing providers and total expert failure
become terminal messages in the stream.
"""

from __future__ import annotations

import asyncio
import contextlib
import re
from typing import AsyncIterator, List, Optional, Sequence, Union

from quorum.config import QuorumConfig
from quorum.consensus.aggregators import ConsensusResult, get_aggregator
from quorum.events.models import ReasoningStep, SolveEvent, SolveEventType, StepAction
from quorum.events.sink import EventSink, QueueEventSink, StepEmitter
from quorum.experts.models import ExpertResult
from quorum.experts.runner import ExpertRunner
from quorum.observability.logging import clear_correlation_id, get_logger, set_correlation_id
from quorum.observability.metrics import decrement_gauge, increment_counter, increment_gauge
from quorum.orchestrator.conversation import (
    ConversationSummary,
    build_summary_prompt,
    should_summarize,
)
from quorum.orchestrator.pipeline import DomainPipeline, PineScriptPipeline, PipelineContext
from quorum.orchestrator.response_parser import split_review
from quorum.providers.interfaces import Message, ProviderHandle, TokenUsage
from quorum.providers.registry import ProviderFactory
from quorum.routing.router import ConsensusStrategy, TaskRouter, TaskType
from quorum.sandbox.executor import SandboxExecutor

logger = get_logger(__name__)

NO_PROVIDERS_MESSAGE = (
    "Error: No LLM providers enabled. Please enable at least one provider in settings."
)
DEFAULT_TITLE = "New Conversation"

ORCHESTRATOR = "orchestrator"
MULTI_MODEL = "multi-model"

SOLVER_SYSTEM_PROMPT = """You are a precise problem solver whose answers are checked by running code.

Solve the task by writing a self-contained Python 3 program:
- Put the program in a single ```python code block
- Use only the standard library
- print() the final answer, and nothing else, on the last line of output
- Keep any explanation short and outside the code block

If your program fails, you will see the error and can correct it."""

REASONING_SYSTEM_PROMPT = """You are a careful reasoning assistant.

Your approach:
1. Break the problem into its parts
2. Work through each part systematically
3. Check your reasoning for gaps and errors
4. Give a clear, complete final answer

Focus on clarity, logical progression and actionable insight."""

TITLE_SYSTEM_PROMPT = (
    "Generate a concise 3-5 word title for this conversation. "
    "Return only the title, no quotes or extra text."
)

_SURROUNDING_QUOTES_RE = re.compile(r"^[\"']|[\"']$")

Task = Union[str, Sequence[Message]]


def _as_messages(task: Task) -> List[Message]:
    if isinstance(task, str):
        return [Message(role="user", content=task)]
    return list(task)


class SolveRun:
    """
    One solve, consumed as an async iterator of text fragments.

    A run can be iterated only once. After iteration finishes the run
    exposes what happened.

    Attributes:
        full_text: Everything streamed
        answer: Answer to keep (the enhanced part when a review was split off)
        review: Review section, if any
        usage: Total token usage across every provider call
        steps: Reasoning steps, in emission order
        results: Expert results, failed ones included
        consensus: Aggregation outcome on the multi-expert path
        task_type: Classification of the task, once known

    Example:
        >>> run = orchestrator.solve("What is 17 * 23?")
        >>> async for fragment in run:
        ...     print(fragment, end="")
        >>> run.usage.total_tokens
    """

    def __init__(self, orchestrator: "Orchestrator", task: Task, mode: str, sink: Optional[EventSink]):
        self._orchestrator = orchestrator
        self._messages = _as_messages(task)
        self._mode = mode
        self._started = False
        self.emitter = StepEmitter(sink)
        self.full_text = ""
        self.answer = ""
        self.review: Optional[str] = None
        self.usage = TokenUsage()
        self.results: List[ExpertResult] = []
        self.consensus: Optional[ConsensusResult] = None
        self.task_type: Optional[TaskType] = None

    @property
    def steps(self) -> List[ReasoningStep]:
        return self.emitter.steps

    def add_usage(self, usage: TokenUsage) -> None:
        self.usage = self.usage + usage
        self.emitter.usage(self.usage)

    def __aiter__(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("SolveRun can only be iterated once")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        correlation_id = set_correlation_id()
        increment_gauge("solves_active")
        fragments: List[str] = []
        try:
            async for fragment in self._orchestrator._solve(self, self._messages, self._mode):
                fragments.append(fragment)
                yield fragment

            self.full_text = "".join(fragments)
            parsed = split_review(self.full_text)
            self.answer = parsed.answer
            self.review = parsed.review
            if parsed.review:
                self.emitter.emit(ORCHESTRATOR, MULTI_MODEL, StepAction.REVIEW, parsed.review)
            if self._orchestrator.enabled_providers:
                self.emitter.usage(self.usage)
            logger.info(
                "solve_finished",
                correlation_id=correlation_id,
                chars=len(self.full_text),
                steps=len(self.steps),
                total_tokens=self.usage.total_tokens,
            )
        finally:
            decrement_gauge("solves_active")
            clear_correlation_id()


class Orchestrator:
    """
    Multi-expert orchestration over a set of providers.

    Paths, in order of precedence:
        1. no enabled providers: terminal error message
        2. a domain pipeline matches the task: the pipeline runs
        3. one provider: verified expert loop (structured) or direct stream
        4. several providers: parallel experts, consensus, chunked winner

    Example:
        >>> orchestrator = Orchestrator(
        ...     [ProviderHandle(id="openai", name="OpenAI", model="gpt-4o"),
        ...      ProviderHandle(id="anthropic", name="Anthropic", model="claude-sonnet-4")],
        ...     config=load_config(),
        ... )
        >>> async for event in orchestrator.solve_events("What is 17 * 23?"):
        ...     print(event.to_json())
    """

    def __init__(
        self,
        providers: Sequence[ProviderHandle],
        *,
        config: Optional[QuorumConfig] = None,
        factory: Optional[ProviderFactory] = None,
        router: Optional[TaskRouter] = None,
        sandbox: Optional[SandboxExecutor] = None,
        pipelines: Optional[Sequence[DomainPipeline]] = None,
    ):
        self.config = config or QuorumConfig()
        self.enabled_providers = [handle for handle in providers if handle.enabled]
        self.factory = factory or ProviderFactory(self.config)
        self.router = router or TaskRouter()
        self.sandbox = sandbox or SandboxExecutor(
            timeout=self.config.sandbox_timeout,
            python_executable=self.config.python_executable,
        )
        self.pipelines = list(pipelines) if pipelines is not None else [PineScriptPipeline()]

    # ------------------------------------------------------------------
    # Solving
    # ------------------------------------------------------------------

    def solve(self, task: Task, *, mode: str = "auto", sink: Optional[EventSink] = None) -> SolveRun:
        """
        Start a solve.

        Args:
            task: Task text or conversation history (oldest first)
            mode: "auto", "exact" or "semantic"
            sink: Receiver of reasoning steps and usage updates
        """
        return SolveRun(self, task, mode, sink)

    async def solve_events(self, task: Task, *, mode: str = "auto") -> AsyncIterator[SolveEvent]:
        """
        Solve and merge content, steps and usage into one ordered event stream.

        The last event is always ``done`` carrying the final usage.
        """
        sink = QueueEventSink()
        run = self.solve(task, mode=mode, sink=sink)

        async def pump() -> None:
            try:
                async for fragment in run:
                    sink.put(SolveEvent(type=SolveEventType.CONTENT, content=fragment))
            finally:
                sink.put(SolveEvent(type=SolveEventType.DONE, usage=run.usage))

        producer = asyncio.create_task(pump())
        try:
            while True:
                event = await sink.queue.get()
                yield event
                if event.type == SolveEventType.DONE:
                    break
            await producer
        finally:
            if not producer.done():
                producer.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await producer

    async def _solve(self, run: SolveRun, messages: List[Message], mode: str) -> AsyncIterator[str]:
        providers = self.enabled_providers
        if not providers:
            increment_counter("solves_total", labels={"path": "no_providers"})
            logger.warning("solve_without_providers")
            yield NO_PROVIDERS_MESSAGE
            return

        text = self.router.extract_text(messages)
        pipeline = next((p for p in self.pipelines if p.matches(text)), None)
        if pipeline is not None:
            increment_counter("solves_total", labels={"path": "pipeline"})
            logger.info("solve_started", path="pipeline", pipeline=pipeline.name, providers=len(providers))
            runners = self._build_runners(run, providers)
            context = PipelineContext(runners, run.emitter, self._chunks)
            try:
                async for chunk in pipeline.run(messages, context):
                    yield chunk
            finally:
                run.results.extend(context.results)
            return

        task_type = self.router.classify(messages)
        run.task_type = task_type

        if len(providers) == 1:
            handle = providers[0]
            run.emitter.emit(
                ORCHESTRATOR, MULTI_MODEL, StepAction.ANALYZE,
                f"Task classified as {task_type.value}; using {handle.name} ({handle.model})",
            )
            if task_type == TaskType.STRUCTURED:
                async for chunk in self._solve_single_verified(run, handle, messages):
                    yield chunk
            else:
                async for chunk in self._solve_single_stream(run, handle, messages):
                    yield chunk
            return

        strategy = self.router.select_consensus_strategy(task_type, mode)
        run.emitter.emit(
            ORCHESTRATOR, MULTI_MODEL, StepAction.ANALYZE,
            f"Orchestrating {len(providers)} models: {', '.join(h.name for h in providers)}. "
            f"Task type: {task_type.value}, consensus: {strategy.value}",
        )
        async for chunk in self._solve_multi(run, providers, messages, task_type, strategy):
            yield chunk

    async def _solve_single_verified(
        self, run: SolveRun, handle: ProviderHandle, messages: List[Message]
    ) -> AsyncIterator[str]:
        increment_counter("solves_total", labels={"path": "single_expert"})
        logger.info("solve_started", path="single_expert", provider=handle.id)
        result = await self._run_expert(run, handle, self._with_system(SOLVER_SYSTEM_PROMPT, messages),
                                        TaskType.STRUCTURED)
        run.results.append(result)
        if not result.success:
            run.emitter.emit(ORCHESTRATOR, MULTI_MODEL, StepAction.FAIL,
                             f"{handle.name} failed after {result.iterations} attempt(s)")
            yield (
                f"Error: {handle.name} could not produce a verified answer after "
                f"{result.iterations} attempt(s). Last error: {result.error or 'unknown error'}"
            )
            return

        run.emitter.emit(ORCHESTRATOR, MULTI_MODEL, StepAction.COMPLETE,
                         f"Verified answer from {handle.name}")
        async for chunk in self._chunks(result.response):
            yield chunk

    async def _solve_single_stream(
        self, run: SolveRun, handle: ProviderHandle, messages: List[Message]
    ) -> AsyncIterator[str]:
        increment_counter("solves_total", labels={"path": "single_stream"})
        logger.info("solve_started", path="single_stream", provider=handle.id)
        run.emitter.emit(handle.id, handle.model, StepAction.GENERATE,
                         f"Using {handle.name} ({handle.model}) for single-model reasoning")
        try:
            provider = self.factory.create(handle)
            async for fragment in provider.stream(
                handle.model,
                self._with_system(REASONING_SYSTEM_PROMPT, messages),
                on_usage=run.add_usage,
            ):
                yield fragment
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.warning("single_stream_failed", provider=handle.id, error=error)
            run.emitter.emit(handle.id, handle.model, StepAction.ERROR, f"API error: {error}")
            yield f"\n\nError: {handle.name} failed to respond: {error}"

    async def _solve_multi(
        self,
        run: SolveRun,
        providers: List[ProviderHandle],
        messages: List[Message],
        task_type: TaskType,
        strategy: ConsensusStrategy,
    ) -> AsyncIterator[str]:
        increment_counter("solves_total", labels={"path": "multi_expert"})
        logger.info("solve_started", path="multi_expert", providers=len(providers),
                    task_type=task_type.value, strategy=strategy.value)

        system_prompt = SOLVER_SYSTEM_PROMPT if task_type == TaskType.STRUCTURED else REASONING_SYSTEM_PROMPT
        prepared = self._with_system(system_prompt, messages)
        settled = await asyncio.gather(
            *(self._run_expert(run, handle, prepared, task_type) for handle in providers),
            return_exceptions=True,
        )

        results: List[ExpertResult] = []
        for handle, outcome in zip(providers, settled):
            if isinstance(outcome, ExpertResult):
                results.append(outcome)
            elif isinstance(outcome, Exception):
                logger.error("expert_crashed", provider=handle.id, error=str(outcome))
                results.append(self._failed_result(handle, outcome))
            else:
                raise outcome
        run.results.extend(results)

        successful = [r for r in results if r.success]
        if not successful:
            errors = "; ".join(f"{r.provider_name}: {r.error or 'no answer'}" for r in results)
            run.emitter.emit(ORCHESTRATOR, MULTI_MODEL, StepAction.FAIL,
                             f"All {len(results)} experts failed")
            yield (
                f"All {len(results)} experts failed to produce an answer. "
                f"Please try again or check your provider settings. Errors: {errors}"
            )
            return

        aggregator = get_aggregator(strategy, self.config.similarity_threshold)
        consensus = aggregator.aggregate(successful, task_type)
        run.consensus = consensus
        run.emitter.emit(ORCHESTRATOR, MULTI_MODEL, StepAction.COMPLETE, consensus.summary)

        async for chunk in self._chunks(consensus.winning_answer):
            yield chunk

    async def _run_expert(
        self, run: SolveRun, handle: ProviderHandle, messages: List[Message], task_type: TaskType
    ) -> ExpertResult:
        try:
            runner = self._runner(run, handle)
        except Exception as exc:
            logger.warning("provider_unavailable", provider=handle.id, error=str(exc))
            run.emitter.emit(handle.id, handle.model, StepAction.ERROR, f"Provider unavailable: {exc}")
            return self._failed_result(handle, exc)
        if task_type == TaskType.STRUCTURED:
            return await runner.run(messages)
        return await runner.run_chat(messages)

    def _runner(self, run: SolveRun, handle: ProviderHandle) -> ExpertRunner:
        return ExpertRunner(
            handle,
            self.factory.create(handle),
            self.sandbox,
            max_retries=self.config.max_retries,
            emitter=run.emitter,
            on_usage=run.add_usage,
        )

    def _build_runners(self, run: SolveRun, providers: Sequence[ProviderHandle]) -> List[ExpertRunner]:
        runners = []
        for handle in providers:
            try:
                runners.append(self._runner(run, handle))
            except Exception as exc:
                logger.warning("provider_unavailable", provider=handle.id, error=str(exc))
                run.emitter.emit(handle.id, handle.model, StepAction.ERROR, f"Provider unavailable: {exc}")
        return runners

    async def _chunks(self, text: str) -> AsyncIterator[str]:
        size = self.config.chunk_size
        for start in range(0, len(text), size):
            if start and self.config.chunk_delay > 0:
                await asyncio.sleep(self.config.chunk_delay)
            yield text[start:start + size]

    @staticmethod
    def _with_system(prompt: str, messages: Sequence[Message]) -> List[Message]:
        return [Message(role="system", content=prompt), *messages]

    @staticmethod
    def _failed_result(handle: ProviderHandle, error: BaseException) -> ExpertResult:
        return ExpertResult(
            provider_id=handle.id,
            provider_name=handle.name,
            model=handle.model,
            success=False,
            iterations=0,
            error=str(error) or type(error).__name__,
        )

    # ------------------------------------------------------------------
    # Auxiliary calls
    # ------------------------------------------------------------------

    async def generate_title(self, first_message: str) -> str:
        """Short title for a conversation; falls back to "New Conversation"."""
        if not self.enabled_providers:
            return DEFAULT_TITLE
        handle = self.enabled_providers[0]
        try:
            provider = self.factory.create(handle)
            completion = await provider.call(
                handle.model,
                [
                    Message(role="system", content=TITLE_SYSTEM_PROMPT),
                    Message(role="user", content=first_message),
                ],
            )
        except Exception as exc:
            logger.warning("title_generation_failed", provider=handle.id, error=str(exc))
            return DEFAULT_TITLE

        title = _SURROUNDING_QUOTES_RE.sub("", completion.text.strip()).strip()
        return title[: self.config.title_max_length] or DEFAULT_TITLE

    async def generate_summary(self, prompt: str) -> str:
        """Summary text for a prompt; empty string on failure."""
        if not self.enabled_providers:
            return ""
        handle = self.enabled_providers[0]
        try:
            provider = self.factory.create(handle)
            completion = await provider.call(handle.model, [Message(role="user", content=prompt)])
        except Exception as exc:
            logger.warning("summary_generation_failed", provider=handle.id, error=str(exc))
            return ""
        return completion.text.strip()

    async def maybe_summarize(
        self,
        history: Sequence[Message],
        existing: Optional[ConversationSummary] = None,
    ) -> Optional[ConversationSummary]:
        """
        Produce a new rolling summary when one is due.

        Returns None when no summary is due or generation failed.
        """
        summarized = existing.message_count if existing is not None else 0
        if not should_summarize(
            len(history),
            summarized,
            trigger_turns=self.config.summary_trigger_turns,
            window_size=self.config.window_size,
        ):
            return None

        summary = await self.generate_summary(build_summary_prompt(history, self.config.window_size))
        if not summary:
            return None
        logger.info("conversation_summarized", messages=len(history))
        return ConversationSummary(summary=summary, message_count=len(history))


__all__ = [
    "NO_PROVIDERS_MESSAGE",
    "Orchestrator",
    "SolveRun",
]
