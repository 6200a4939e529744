"""Observability for Quorum.

Components:
    - logging: Structured logging with structlog and per-solve correlation IDs
    - metrics: Prometheus metrics for solves, experts, sandbox and tokens

Usage:
    from quorum.observability import get_logger, increment_counter

    logger = get_logger(__name__)
    logger.info("solve_started", providers=3)

    increment_counter("solves_total", labels={"path": "multi_expert"})
"""

from quorum.observability.logging import (
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)
from quorum.observability.metrics import (
    get_metrics_output,
    get_metrics_registry,
    increment_counter,
    record_histogram,
    track_duration,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "increment_counter",
    "record_histogram",
    "track_duration",
    "get_metrics_registry",
    "get_metrics_output",
]
