"""
Consensus Aggregators

Combine the answers of several experts into one winning answer.

- ExactMatchAggregator: votes over identical canonical answers; used for
  structured tasks where experts should converge on one value.
- SemanticAggregator: clusters near-identical canonical answers by
  normalized Levenshtein similarity; used for open-ended tasks.
"""

from __future__ import annotations

from typing import Dict, List, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field

from quorum.consensus.canonical import similarity
from quorum.experts.models import ExpertResult
from quorum.observability.logging import get_logger
from quorum.observability.metrics import record_histogram
from quorum.routing.router import ConsensusStrategy, TaskType

logger = get_logger(__name__)


class ConsensusGroup(BaseModel):
    """
    Experts that gave the same (or a similar) answer.

    Attributes:
        canonical_answer: Representative canonical answer
        responses: Member results, in input order
        vote_count: Number of members
        average_success: Fraction of members that succeeded
    """

    canonical_answer: str = Field(..., description="Representative canonical answer")
    responses: List[ExpertResult] = Field(..., description="Member results", min_length=1)
    vote_count: int = Field(..., description="Number of members", ge=1)
    average_success: float = Field(..., description="Fraction succeeded", ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_members(cls, canonical_answer: str, members: List[ExpertResult]) -> "ConsensusGroup":
        return cls(
            canonical_answer=canonical_answer,
            responses=members,
            vote_count=len(members),
            average_success=sum(1 for m in members if m.success) / len(members),
        )

    @property
    def provider_names(self) -> List[str]:
        return [member.provider_name for member in self.responses]


class ConsensusResult(BaseModel):
    """
    Outcome of aggregation.

    ``all_groups`` is sorted with the winning group first.
    """

    strategy: ConsensusStrategy = Field(..., description="Strategy used")
    task_type: TaskType = Field(..., description="Task classification")
    winning_answer: str = Field(..., description="Raw response of the chosen expert")
    winning_group: ConsensusGroup = Field(..., description="Winning group")
    all_groups: List[ConsensusGroup] = Field(..., description="All groups, winner first")
    total_experts: int = Field(..., description="Number of aggregated results", ge=1)
    agreement: float = Field(..., description="Winning votes / total", ge=0.0, le=1.0)
    summary: str = Field(..., description="Human-readable agreement summary")

    model_config = ConfigDict(frozen=True)


class Aggregator(Protocol):
    """Common interface of the aggregators."""

    strategy: ConsensusStrategy

    def aggregate(self, results: Sequence[ExpertResult], task_type: TaskType) -> ConsensusResult:
        ...


def _rank(groups: List[ConsensusGroup]) -> List[ConsensusGroup]:
    # Stable: equal groups keep first-seen order.
    return sorted(groups, key=lambda g: (g.vote_count, g.average_success), reverse=True)


def _models(count: int) -> str:
    return f"{count} model" if count == 1 else f"{count} models"


def _finish(
    strategy: ConsensusStrategy,
    task_type: TaskType,
    winning_answer: str,
    groups: List[ConsensusGroup],
    total: int,
    summary: str,
) -> ConsensusResult:
    winner = groups[0]
    agreement = winner.vote_count / total
    record_histogram("consensus_agreement_ratio", agreement, labels={"strategy": strategy.value})
    logger.info(
        "consensus_reached",
        strategy=strategy.value,
        groups=len(groups),
        total_experts=total,
        agreement=round(agreement, 3),
    )
    return ConsensusResult(
        strategy=strategy,
        task_type=task_type,
        winning_answer=winning_answer,
        winning_group=winner,
        all_groups=groups,
        total_experts=total,
        agreement=agreement,
        summary=summary,
    )


class ExactMatchAggregator:
    """
    Majority vote over identical canonical answers.

    Example:
        >>> result = ExactMatchAggregator().aggregate(results, TaskType.STRUCTURED)
        >>> result.summary
        'All 3 models agree on the answer.'
    """

    strategy = ConsensusStrategy.EXACT

    def aggregate(self, results: Sequence[ExpertResult], task_type: TaskType) -> ConsensusResult:
        if not results:
            raise ValueError("Cannot aggregate an empty result set")

        buckets: Dict[str, List[ExpertResult]] = {}
        for result in results:
            buckets.setdefault(result.canonical_answer, []).append(result)

        groups = _rank([ConsensusGroup.from_members(key, members) for key, members in buckets.items()])
        winner = groups[0]
        return _finish(
            self.strategy,
            task_type,
            winner.responses[0].response,
            groups,
            len(results),
            self._summary(groups, len(results)),
        )

    @staticmethod
    def _summary(groups: List[ConsensusGroup], total: int) -> str:
        if len(groups) == 1:
            if total == 1:
                return "Only 1 model answered."
            return f"All {total} models agree on the answer."

        winner = groups[0]
        if winner.vote_count > total / 2:
            names = ", ".join(winner.provider_names)
            return (
                f"{winner.vote_count}/{total} models ({names}) agree. "
                f"{len(groups) - 1} alternative answer(s) found."
            )

        return (
            f"No clear consensus. {len(groups)} different answers from {_models(total)}. "
            "Showing most common answer."
        )


class SemanticAggregator:
    """
    Single-linkage clustering by answer similarity.

    Each result joins the first cluster whose first member is at least
    ``similarity_threshold`` similar, else starts a new cluster. Within a
    cluster the representative prefers a successful member, then the
    longest response; earlier members win exact ties. Length is a proxy for
    completeness, not a correctness guarantee.

    Example:
        >>> aggregator = SemanticAggregator(similarity_threshold=0.8)
        >>> result = aggregator.aggregate(results, TaskType.OPEN_ENDED)
    """

    strategy = ConsensusStrategy.SEMANTIC

    def __init__(self, similarity_threshold: float = 0.7):
        if not 0.0 <= similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be between 0 and 1")
        self.similarity_threshold = similarity_threshold

    def aggregate(self, results: Sequence[ExpertResult], task_type: TaskType) -> ConsensusResult:
        if not results:
            raise ValueError("Cannot aggregate an empty result set")

        clusters: List[List[ExpertResult]] = []
        for result in results:
            for cluster in clusters:
                if similarity(result.canonical_answer, cluster[0].canonical_answer) >= self.similarity_threshold:
                    cluster.append(result)
                    break
            else:
                clusters.append([result])

        groups = _rank([
            ConsensusGroup.from_members(self.representative(cluster).canonical_answer, cluster)
            for cluster in clusters
        ])
        winner = groups[0]
        return _finish(
            self.strategy,
            task_type,
            self.representative(winner.responses).response,
            groups,
            len(results),
            self._summary(groups, len(results)),
        )

    @staticmethod
    def representative(members: Sequence[ExpertResult]) -> ExpertResult:
        """Prefer success, then the longest response; max() keeps the first of equals."""
        return max(members, key=lambda m: (m.success, len(m.response)))

    @staticmethod
    def _summary(groups: List[ConsensusGroup], total: int) -> str:
        if len(groups) == 1:
            if total == 1:
                return "Only 1 model answered."
            return f"All {total} models provided semantically similar answers."

        winner = groups[0]
        if winner.vote_count > total / 2:
            names = ", ".join(winner.provider_names)
            return (
                f"{winner.vote_count}/{total} models ({names}) gave similar answers. "
                f"{len(groups) - 1} alternative answer(s) found."
            )

        return (
            f"No clear consensus. {len(groups)} different answers from {_models(total)}. "
            "Showing most supported answer."
        )


def get_aggregator(strategy: ConsensusStrategy | str, similarity_threshold: float = 0.7) -> Aggregator:
    """
    Return the aggregator for a strategy name.

    Raises:
        ValueError: If the strategy is unknown
    """
    strategy = ConsensusStrategy(strategy)
    if strategy == ConsensusStrategy.EXACT:
        return ExactMatchAggregator()
    return SemanticAggregator(similarity_threshold=similarity_threshold)


__all__ = [
    "Aggregator",
    "ConsensusGroup",
    "ConsensusResult",
    "ExactMatchAggregator",
    "SemanticAggregator",
    "get_aggregator",
]
