"""Prometheus-compatible metrics for Quorum.

Usage:
    from quorum.observability.metrics import (
        increment_counter,
        record_histogram,
        track_duration,
    )

    increment_counter("solves_total", labels={"path": "multi_expert"})

    record_histogram("consensus_agreement_ratio", 0.67, labels={"strategy": "exact"})

    with track_duration("sandbox_duration_seconds"):
        await sandbox.execute(code)
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


_registry = CollectorRegistry()

# Orchestration Metrics
solves_total = Counter(
    "quorum_solves_total",
    "Total number of solves by execution path",
    ["path"],  # no_providers, pipeline, single_expert, single_stream, multi_expert
    registry=_registry,
)

solves_active = Gauge(
    "quorum_solves_active",
    "Number of solves currently streaming",
    registry=_registry,
)

# Expert Metrics
expert_runs_total = Counter(
    "quorum_expert_runs_total",
    "Total number of expert runs by mode and outcome",
    ["mode", "outcome"],  # mode: verify, chat; outcome: success, failure
    registry=_registry,
)

expert_iterations = Histogram(
    "quorum_expert_iterations",
    "Attempts used per verified expert run",
    registry=_registry,
    buckets=(1, 2, 3, 4, 5, 6, 8, 10, float("inf")),
)

# Sandbox Metrics
sandbox_executions_total = Counter(
    "quorum_sandbox_executions_total",
    "Total number of sandbox executions by outcome",
    ["outcome"],  # success, error, timeout, launch_failure
    registry=_registry,
)

sandbox_duration_seconds = Histogram(
    "quorum_sandbox_duration_seconds",
    "Wall-clock duration of sandbox executions in seconds",
    registry=_registry,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, float("inf")),
)

# Token Metrics
llm_tokens_total = Counter(
    "quorum_llm_tokens_total",
    "Total number of LLM tokens used",
    ["provider", "token_type"],  # token_type: input, output
    registry=_registry,
)

# Consensus Metrics
consensus_agreement_ratio = Histogram(
    "quorum_consensus_agreement_ratio",
    "Fraction of experts agreeing with the winning answer",
    ["strategy"],
    registry=_registry,
    buckets=(0.2, 0.34, 0.5, 0.67, 0.75, 0.9, 1.0),
)


def increment_counter(
    metric_name: str,
    value: float = 1.0,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Increment a counter metric.

    Args:
        metric_name: Name of the counter (without quorum_ prefix)
        value: Amount to increment by (default: 1.0)
        labels: Optional labels as key-value pairs

    Example:
        >>> increment_counter("expert_runs_total", labels={"mode": "verify", "outcome": "success"})
    """
    labels = labels or {}
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Counter):
        if labels:
            metric.labels(**labels).inc(value)
        else:
            metric.inc(value)


def record_histogram(
    metric_name: str,
    value: float,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Record a histogram observation.

    Args:
        metric_name: Name of the histogram (without quorum_ prefix)
        value: Value to observe
        labels: Optional labels as key-value pairs
    """
    labels = labels or {}
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Histogram):
        if labels:
            metric.labels(**labels).observe(value)
        else:
            metric.observe(value)


def increment_gauge(metric_name: str, value: float = 1.0) -> None:
    """Increment an unlabelled gauge."""
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Gauge):
        metric.inc(value)


def decrement_gauge(metric_name: str, value: float = 1.0) -> None:
    """Decrement an unlabelled gauge."""
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Gauge):
        metric.dec(value)


@contextmanager
def track_duration(
    metric_name: str,
    labels: Optional[Dict[str, str]] = None,
) -> Iterator[None]:
    """Context manager to track duration of an operation.

    Example:
        >>> with track_duration("sandbox_duration_seconds"):
        ...     pass
    """
    start_time = time.perf_counter()
    try:
        yield
    finally:
        record_histogram(metric_name, time.perf_counter() - start_time, labels)


def get_metrics_registry() -> CollectorRegistry:
    """Get the metrics registry."""
    return _registry


def get_metrics_output() -> bytes:
    """Get Prometheus-formatted metrics output."""
    return generate_latest(_registry)


def _get_metric(metric_name: str) -> Any:
    """Get metric by name (with or without quorum_ prefix)."""
    if metric_name.startswith("quorum_"):
        metric_name = metric_name[len("quorum_"):]
    return _METRICS.get(metric_name)


_METRICS: Dict[str, Any] = {
    "solves_total": solves_total,
    "solves_active": solves_active,
    "expert_runs_total": expert_runs_total,
    "expert_iterations": expert_iterations,
    "sandbox_executions_total": sandbox_executions_total,
    "sandbox_duration_seconds": sandbox_duration_seconds,
    "llm_tokens_total": llm_tokens_total,
    "consensus_agreement_ratio": consensus_agreement_ratio,
}


__all__ = [
    "increment_counter",
    "record_histogram",
    "increment_gauge",
    "decrement_gauge",
    "track_duration",
    "get_metrics_registry",
    "get_metrics_output",
    "solves_total",
    "solves_active",
    "expert_runs_total",
    "expert_iterations",
    "sandbox_executions_total",
    "sandbox_duration_seconds",
    "llm_tokens_total",
    "consensus_agreement_ratio",
]
