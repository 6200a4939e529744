"""
Global pytest configuration for the quorum test suite

This file provides shared fixtures and enforces Python version requirements.
The fakes below stand in for LLM backends and the sandbox so that solves
run deterministically and offline.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, List, Sequence, Union

import pytest

from quorum.config import QuorumConfig
from quorum.events.sink import CollectingEventSink
from quorum.providers.base import BaseProvider
from quorum.providers.interfaces import Completion, Message, ProviderHandle, TokenUsage
from quorum.sandbox.executor import ExecutionResult

# Add tests directory to sys.path to support imports from test fixtures
_tests_dir = Path(__file__).parent
if str(_tests_dir) not in sys.path:
    sys.path.insert(0, str(_tests_dir))

_MIN_PY_VERSION = (3, 11)


def _verify_python_version() -> str:
    """Return the interpreter version string or exit if <3.11."""
    version_info = sys.version_info
    version_str = ".".join(map(str, version_info[:3]))
    if version_info < _MIN_PY_VERSION:
        pytest.exit(
            f"ERROR: pytest must run on Python 3.11+ (detected {version_str}).",
            returncode=1,
        )
    return version_str


def pytest_report_header(config: pytest.Config) -> str:
    version_str = _verify_python_version()
    return f"Python interpreter verified for pytest: {version_str}"


@pytest.fixture(scope="session", autouse=True)
def register_markers(pytestconfig: pytest.Config) -> None:
    """Register project markers to prevent unknown marker warnings."""
    markers = {
        "unit": "Unit tests that should execute quickly.",
        "integration": "Integration tests hitting multiple components.",
        "slow": "Slow or high-cost tests.",
    }
    for name, description in markers.items():
        pytestconfig.addinivalue_line("markers", f"{name}: {description}")


# ----------------------------------------------------------------------
# Fakes
# ----------------------------------------------------------------------

Scripted = Union[str, Exception]

SCRIPTED_USAGE = TokenUsage(input_tokens=10, output_tokens=5)


class ScriptedProvider(BaseProvider):
    """
    Provider replaying a fixed list of responses.

    Each entry is either the full response text or an exception to raise.
    The last entry repeats once the script is exhausted. Every call reports
    10 input and 5 output tokens.
    """

    def __init__(self, script: Sequence[Scripted], name: str = "scripted", piece: int = 7):
        super().__init__()
        self._name = name
        self.script = list(script)
        self.piece = piece
        self.calls: List[List[Message]] = []

    @property
    def name(self) -> str:
        return self._name

    def _next(self, messages: List[Message]) -> Scripted:
        self.calls.append(messages)
        index = min(len(self.calls), len(self.script)) - 1
        return self.script[index]

    async def _call_impl(self, model, messages):
        entry = self._next(messages)
        if isinstance(entry, Exception):
            raise entry
        return Completion(text=entry, usage=SCRIPTED_USAGE)

    async def _stream_impl(self, model, messages, usage):
        entry = self._next(messages)
        usage.input_tokens = SCRIPTED_USAGE.input_tokens
        usage.output_tokens = SCRIPTED_USAGE.output_tokens
        if isinstance(entry, Exception):
            raise entry
        for start in range(0, len(entry), self.piece):
            yield entry[start:start + self.piece]


class FakeFactory:
    """ProviderFactory stand-in keyed by handle id."""

    def __init__(self, providers: Dict[str, BaseProvider]):
        self.providers = providers
        self.created: List[str] = []

    def create(self, handle: ProviderHandle) -> BaseProvider:
        self.created.append(handle.id)
        try:
            return self.providers[handle.id]
        except KeyError:
            raise RuntimeError(f"no fake provider for {handle.id}") from None


class ScriptedSandbox:
    """Sandbox returning canned results in order; the last one repeats."""

    def __init__(self, results: Sequence[ExecutionResult]):
        self.results = list(results)
        self.executed: List[str] = []

    async def execute(self, code: str) -> ExecutionResult:
        self.executed.append(code)
        index = min(len(self.executed), len(self.results)) - 1
        return self.results[index]


def handle(provider_id: str, name: str = "", model: str = "test-model", **kwargs) -> ProviderHandle:
    return ProviderHandle(id=provider_id, name=name or provider_id.title(), model=model, **kwargs)


def python_answer(expression: str, prose: str = "Here is the solution.") -> str:
    return f"{prose}\n\n```python\nprint({expression})\n```"


@pytest.fixture
def sink() -> CollectingEventSink:
    return CollectingEventSink()


@pytest.fixture
def config() -> QuorumConfig:
    """Fast settings: three attempts, small chunks, no chunk delay."""
    return QuorumConfig(
        max_retries=3,
        sandbox_timeout=10.0,
        chunk_size=8,
        chunk_delay=0.0,
    )
