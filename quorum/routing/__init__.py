"""
Routing Module for Task Classification

Classifies tasks and selects the consensus strategy used to combine
expert answers.
"""

from quorum.routing.router import (
    CONSENSUS_MODES,
    ConsensusStrategy,
    RouterConfig,
    TaskRouter,
    TaskType,
)

__all__ = [
    "CONSENSUS_MODES",
    "ConsensusStrategy",
    "RouterConfig",
    "TaskRouter",
    "TaskType",
]
