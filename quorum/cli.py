"""Command line entry point: solve one task and print the streamed answer."""

import argparse
import asyncio
import sys
from typing import List, Optional, Sequence

from quorum.config import ConfigError, QuorumConfig, load_config
from quorum.events.models import ReasoningStep, SolveEventType
from quorum.observability.logging import configure_logging
from quorum.orchestrator import Orchestrator
from quorum.providers.interfaces import ProviderHandle
from quorum.routing.router import CONSENSUS_MODES, RouterConfig, TaskRouter

DISPLAY_NAMES = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "openrouter": "OpenRouter",
}


def parse_provider(value: str) -> ProviderHandle:
    """Parse ``id:model`` into a ProviderHandle."""
    provider_id, sep, model = value.partition(":")
    if not sep or not provider_id or not model:
        raise argparse.ArgumentTypeError(f"expected PROVIDER:MODEL, got {value!r}")
    return ProviderHandle(id=provider_id, name=DISPLAY_NAMES.get(provider_id, provider_id), model=model)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quorum",
        description="Ask several LLMs the same task and stream the consensus answer.",
    )
    parser.add_argument("task", help="Task or question to solve")
    parser.add_argument(
        "--provider",
        dest="providers",
        action="append",
        type=parse_provider,
        default=[],
        metavar="PROVIDER:MODEL",
        help="Provider to consult (repeatable), e.g. openai:gpt-4o",
    )
    parser.add_argument("--mode", choices=CONSENSUS_MODES, default="auto", help="Consensus mode")
    parser.add_argument("--config", default=None, help="Path to quorum.toml")
    parser.add_argument("--json", action="store_true", help="Print solve events as JSON lines")
    parser.add_argument("--quiet", action="store_true", help="Do not print reasoning steps")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    return parser


def _format_step(step: ReasoningStep) -> str:
    return f"[{step.step_number}] {step.provider}/{step.model} {step.action}: {step.content}"


async def _run(orchestrator: Orchestrator, task: str, mode: str, as_json: bool, quiet: bool) -> None:
    async for event in orchestrator.solve_events(task, mode=mode):
        if as_json:
            print(event.to_json(), flush=True)
        elif event.type == SolveEventType.CONTENT:
            sys.stdout.write(event.content or "")
            sys.stdout.flush()
        elif event.type == SolveEventType.REASONING_STEP and not quiet:
            print(_format_step(event.step), file=sys.stderr, flush=True)
        elif event.type == SolveEventType.DONE and not quiet:
            usage = event.usage
            sys.stdout.write("\n")
            if usage is not None:
                print(
                    f"tokens: {usage.input_tokens} in / {usage.output_tokens} out",
                    file=sys.stderr,
                )


def _router(config: QuorumConfig) -> TaskRouter:
    if config.router_config is not None:
        return TaskRouter(RouterConfig.from_yaml(config.router_config))
    return TaskRouter(RouterConfig.from_env())


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"quorum: {exc}", file=sys.stderr)
        return 2

    configure_logging(level=args.log_level or config.log_level, format=config.log_format)

    providers: List[ProviderHandle] = args.providers or list(config.providers)
    orchestrator = Orchestrator(providers, config=config, router=_router(config))
    try:
        asyncio.run(_run(orchestrator, args.task, args.mode, args.json, args.quiet))
    except KeyboardInterrupt:
        return 130
    return 0


__all__ = ["build_parser", "main", "parse_provider"]
