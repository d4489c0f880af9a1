"""Loguru sinks for executor, fetcher and CLI diagnostics."""

import sys

from loguru import logger

from audit_system.config.settings import settings


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    """
    Install the loguru sink used by executors, the fetcher and the CLI.

    An interactive terminal with LOG_FORMAT=console gets coloured lines on
    stderr; every other case (workers, cron, CI) emits one JSON object per
    record on stdout. Arguments override the corresponding settings.
    """
    level = level or settings.log_level
    log_format = (log_format or settings.log_format).lower()

    logger.remove()
    logger.configure(extra={"component": "audit_system"})

    if sys.stderr.isatty() and log_format == "console":
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[component]}</cyan> | <level>{message}</level>",
            level=level,
            colorize=True,
        )
    else:
        logger.add(
            sys.stdout,
            format="{message}",
            level=level,
            serialize=True,
            diagnose=False,  # keep secrets out of tracebacks
        )


def get_logger(component: str):
    """
    Get a logger instance bound to a specific component name.

    Example:
        >>> get_logger("stage_3").info("Verifying claims")
    """
    return logger.bind(component=component)


configure_logging()

__all__ = ["logger", "get_logger", "configure_logging"]
