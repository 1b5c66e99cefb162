# src/spanlog/contracts/enums.py
"""Kinds, codes and levels shared across the connector boundary.

String values match the text the OpenTelemetry Collector renders for the same
concepts, so log attributes such as ``span.kind`` read the same whichever side
produced them.
"""

from enum import StrEnum

from opentelemetry._logs import SeverityNumber


class SpanKind(StrEnum):
    """Role of a span in a trace.

    Values are the collector's ``Kind.String()`` forms; ``from_proto`` maps the
    OTLP enum integers (0 = unspecified, 1 = internal, ...).
    """

    UNSPECIFIED = "Unspecified"
    INTERNAL = "Internal"
    SERVER = "Server"
    CLIENT = "Client"
    PRODUCER = "Producer"
    CONSUMER = "Consumer"

    @classmethod
    def from_proto(cls, value: int) -> "SpanKind":
        return _KIND_BY_PROTO[value]


_KIND_BY_PROTO: dict[int, SpanKind] = dict(enumerate(SpanKind))


class StatusCode(StrEnum):
    """Span status code."""

    UNSET = "Unset"
    OK = "Ok"
    ERROR = "Error"


class LogLevel(StrEnum):
    """Severity text accepted by ``log_level``.

    Each level maps to the first number of its OpenTelemetry severity range
    (five levels of four numbers each, TRACE starting at 1).
    """

    TRACE = "Trace"
    DEBUG = "Debug"
    INFO = "Info"
    WARN = "Warn"
    ERROR = "Error"
    FATAL = "Fatal"

    @property
    def severity_number(self) -> SeverityNumber:
        return _SEVERITY_BY_LEVEL[self]


_SEVERITY_BY_LEVEL: dict[LogLevel, SeverityNumber] = {
    LogLevel.TRACE: SeverityNumber.TRACE,
    LogLevel.DEBUG: SeverityNumber.DEBUG,
    LogLevel.INFO: SeverityNumber.INFO,
    LogLevel.WARN: SeverityNumber.WARN,
    LogLevel.ERROR: SeverityNumber.ERROR,
    LogLevel.FATAL: SeverityNumber.FATAL,
}


def severity_number_for(level: str) -> SeverityNumber:
    """Map severity text to its number; unrecognized text maps to INFO."""
    try:
        return LogLevel(level).severity_number
    except ValueError:
        return SeverityNumber.INFO


class CounterEmission(StrEnum):
    """When the connector records its per-call counters.

    EMPTY_BATCH_ONLY keeps the historical control flow: counters are only
    recorded for calls that forwarded nothing downstream. ALWAYS records them
    after every call that did not fail downstream.
    """

    EMPTY_BATCH_ONLY = "empty_batch_only"
    ALWAYS = "always"


class ContextShape(StrEnum):
    """Layers a condition is evaluated against."""

    SPAN = "span"  # resource, scope, span
    EVENT = "event"  # resource, scope, span, span event
