# src/spanlog/core/logging.py
"""Diagnostic logging for spanlog.

The connector reports per-record problems (a condition that failed to
evaluate, a body template that fell back to the default) as structured
structlog events. Nothing here touches the produced log records; this is the
connector's own diagnostic sink.

stdlib loggers and structlog loggers share one handler: records from
``logging.getLogger(__name__)`` are run through the same processor chain via
``ProcessorFormatter``, so both render identically (JSON or console).
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

# Dependencies that log per span or per template compile at DEBUG
_NOISY_LOGGERS: tuple[str, ...] = (
    "opentelemetry",
    "opentelemetry.sdk",
    "opentelemetry.exporter",
    "jinja2",
)


def _drop_formatter_keys(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Remove ``_record`` and ``_from_structlog``.

    ProcessorFormatter always sets both; a KeyError means the wiring is wrong.
    """
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]


def _renderer_chain(json_output: bool) -> list[Any]:
    if json_output:
        return [
            _drop_formatter_keys,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [_drop_formatter_keys, structlog.dev.ConsoleRenderer(colors=False)]


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Route structlog and stdlib logging to a single handler.

    Args:
        json_output: One JSON object per line instead of console text
        level: Root level name (DEBUG, INFO, WARNING, ERROR)
        stream: Destination; stderr by default so CLI output on stdout stays
            machine-readable

    Raises:
        AttributeError: If ``level`` is not a logging level name
    """
    root_level: int = getattr(logging, level.upper())
    shared = _shared_processors()

    structlog.configure(
        processors=[*shared, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # tests reconfigure between cases
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(ProcessorFormatter(processors=_renderer_chain(json_output), foreign_pre_chain=shared))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(root_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))


@contextmanager
def transform_log_context(**values: Any) -> Iterator[None]:
    """Bind values to every diagnostic emitted during one transform call.

    Uses contextvars, so concurrent transform calls on different threads keep
    their own values.

    Example:
        with transform_log_context(spans_in_batch=batch.span_count()):
            ...  # "Failed to evaluate condition" events carry spans_in_batch
    """
    with structlog.contextvars.bound_contextvars(**values):
        yield


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named after the calling module."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
