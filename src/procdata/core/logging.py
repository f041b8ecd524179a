"""Logging configuration using structlog.

Logs go to stderr so stdout stays clean for command output. Library code
never configures logging; only the CLI entry point calls setup_logging().
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


class _LazyStderrFactory:
    """Resolve sys.stderr at logger creation time, not at configure() time.

    PrintLoggerFactory(file=sys.stderr) captures the file handle once, which
    goes stale under CliRunner when stderr is swapped between invocations.
    """

    def __call__(self, *args: Any, **kwargs: Any) -> structlog.PrintLogger:
        return structlog.PrintLogger(file=sys.stderr)


def _renderer(json_output: bool) -> Any:
    if json_output:
        return structlog.processors.JSONRenderer(default=str)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging(verbose: bool = False, *, json_output: bool = False) -> None:
    """Configure structlog for procdata.

    Args:
        verbose: DEBUG level when True, INFO otherwise. Parameter values and
            row materialization are only logged at DEBUG.
        json_output: Emit one JSON object per line instead of console text.
    """
    level = logging.DEBUG if verbose else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _renderer(json_output),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=_LazyStderrFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None, **context: Any) -> Any:
    """Get a structlog logger bound with an optional name and context.

    Never call this at module level; loggers are created inside functions
    after setup_logging() has run.
    """
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    if context:
        logger = logger.bind(**context)
    return logger
