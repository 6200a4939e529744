"""
Consensus Module for Multi-Expert Answer Selection

Canonicalizes expert answers and selects a winner by exact-match voting
or similarity clustering.
"""

from quorum.consensus.canonical import canonicalize_answer, extract_final_answer, similarity
from quorum.consensus.aggregators import (
    Aggregator,
    ConsensusGroup,
    ConsensusResult,
    ExactMatchAggregator,
    SemanticAggregator,
    get_aggregator,
)

__all__ = [
    "Aggregator",
    "ConsensusGroup",
    "ConsensusResult",
    "ExactMatchAggregator",
    "SemanticAggregator",
    "canonicalize_answer",
    "extract_final_answer",
    "get_aggregator",
    "similarity",
]
