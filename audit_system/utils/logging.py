"""Structured logging utilities using structlog for pipeline state transitions."""

import os
import sys
import uuid
from typing import Any, Optional

import structlog
from structlog.contextvars import bind_contextvars, merge_contextvars, unbind_contextvars
from structlog.processors import JSONRenderer

IS_TTY = sys.stderr.isatty()
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def configure_structured_logging() -> None:
    """
    Configure structured logging with appropriate processors and renderers.

    Uses:
    - Console renderer for development (colorized, human-readable)
    - JSON renderer for production (structured, machine-readable)
    - Context variables for run_id / product_id correlation
    """
    processors = [
        merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if IS_TTY and LOG_FORMAT == "console":
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    else:
        processors.append(JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_structured_logger(component: str, **context: Any) -> structlog.BoundLogger:
    """
    Get a structured logger bound to a component name.

    Example:
        >>> log = get_structured_logger("StageOrchestrator")
        >>> log.info("stage_done", product_id="p-1", stage=3)
    """
    logger = structlog.get_logger().bind(component=component)
    if context:
        logger = logger.bind(**context)
    return logger


def new_correlation_id() -> str:
    """Generate a correlation ID for one trigger invocation."""
    return str(uuid.uuid4())


def bind_invocation_context(
    correlation_id: Optional[str] = None,
    **context: Any,
) -> str:
    """
    Bind a correlation ID (and extra keys) to every log line of this invocation.

    Returns:
        The correlation ID in effect.
    """
    correlation_id = correlation_id or new_correlation_id()
    bind_contextvars(correlation_id=correlation_id, **context)
    return correlation_id


def clear_invocation_context(*keys: str) -> None:
    """Remove invocation context bound by bind_invocation_context."""
    unbind_contextvars("correlation_id", *keys)


configure_structured_logging()


__all__ = [
    "get_structured_logger",
    "new_correlation_id",
    "bind_invocation_context",
    "clear_invocation_context",
    "configure_structured_logging",
]
