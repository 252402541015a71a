"""Logging configuration for Gaia."""

import logging
import sys

import structlog


class _StderrWriter:
    """File-like target that resolves `sys.stderr` on every write."""

    def write(self, text: str) -> int:
        # None when the process was started with stderr closed
        if sys.stderr is None:
            return 0
        return sys.stderr.write(text)

    def flush(self) -> None:
        if sys.stderr is not None:
            sys.stderr.flush()


def configure_logging(level: str = "WARNING", fmt: str = "console") -> None:
    """Configure structured logging for Gaia.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        fmt: "console" for human readable output, anything else for JSON
    """
    log_level = getattr(logging, str(level or "WARNING").upper(), logging.WARNING)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if fmt == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    # stdout carries answers, logs always go to stderr
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=_StderrWriter()),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger instance.

    Args:
        name: Optional logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


log = get_logger(__name__)
