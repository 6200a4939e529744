"""Structured logging with correlation IDs for Quorum.

Every solve binds a correlation ID so the log lines of all experts that
worked on one task can be grouped together.

Usage:
    from quorum.observability import get_logger, configure_logging

    configure_logging(level="INFO", format="json")

    logger = get_logger(__name__)
    logger.info("solve_started", providers=2, task_type="structured")

    logger = logger.bind(provider="openai")
    logger.info("expert_attempt_started", attempt=1)
"""

import logging
import logging.handlers
import sys
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

import structlog
from structlog.types import EventDict, Processor


correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add the current solve's correlation ID to log entries."""
    correlation_id = correlation_id_var.get()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_log_level(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add log level to event dictionary, normalising ``warn``."""
    if method_name == "warn":
        method_name = "warning"
    event_dict["level"] = method_name
    return event_dict


def configure_logging(
    level: str = "INFO",
    format: str = "json",
    log_file: Optional[Path] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure structured logging for Quorum.

    Log lines go to stderr so that streamed answers on stdout stay clean.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format ("json" or "console")
        log_file: Optional path for file logging with rotation
        max_bytes: Maximum size of log file before rotation
        backup_count: Number of backup files to keep

    Example:
        >>> configure_logging(level="DEBUG", format="console")
        >>> configure_logging(level="INFO", format="json", log_file=Path(".quorum/logs/quorum.log"))
    """
    logging_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=str(log_file),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
        )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging_level)
    for handler in handlers:
        handler.setLevel(logging_level)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root_logger.addHandler(handler)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("sandbox_execution_finished", success=True)
    """
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set correlation ID for the current solve.

    Args:
        correlation_id: Correlation ID (auto-generated if None)

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = f"solve-{uuid.uuid4().hex[:12]}"
    correlation_id_var.set(correlation_id)
    return correlation_id


def clear_correlation_id() -> None:
    """Clear correlation ID from context."""
    correlation_id_var.set(None)


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID."""
    return correlation_id_var.get()


__all__ = [
    "configure_logging",
    "get_logger",
    "set_correlation_id",
    "clear_correlation_id",
    "get_correlation_id",
]
