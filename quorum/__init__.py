"""
Quorum: multi-expert LLM orchestration with automated consensus.

Example:
    >>> from quorum import Orchestrator, ProviderHandle
    >>> orchestrator = Orchestrator([
    ...     ProviderHandle(id="openai", name="OpenAI", model="gpt-4o"),
    ...     ProviderHandle(id="anthropic", name="Anthropic", model="claude-sonnet-4"),
    ... ])
    >>> async for fragment in orchestrator.solve("What is 17 * 23?"):
    ...     print(fragment, end="")
"""

__version__ = "0.1.0"

from quorum.config import QuorumConfig, load_config
from quorum.orchestrator import Orchestrator, SolveRun
from quorum.providers.interfaces import Message, ProviderHandle, TokenUsage

__all__ = [
    "Message",
    "Orchestrator",
    "ProviderHandle",
    "QuorumConfig",
    "SolveRun",
    "TokenUsage",
    "__version__",
    "load_config",
]
