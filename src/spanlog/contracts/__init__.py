"""Shared contracts: batch models, enums, evaluation context and protocols.

Nothing in this package depends on the engine; the engine, adapters and
codecs all depend on it.
"""

from spanlog.contracts.context import ConditionContext
from spanlog.contracts.enums import (
    ContextShape,
    CounterEmission,
    LogLevel,
    SpanKind,
    StatusCode,
    severity_number_for,
)
from spanlog.contracts.protocols import CompiledPredicate, LogConsumer, MetricsRecorder
from spanlog.contracts.telemetry import (
    Attributes,
    AttributeValue,
    InstrumentationScope,
    LogBatch,
    LogRecord,
    Resource,
    ResourceLogs,
    ResourceSpans,
    ScopeLogs,
    ScopeSpans,
    Span,
    SpanEvent,
    Status,
    TraceBatch,
    attribute_as_string,
)

__all__ = [
    "AttributeValue",
    "Attributes",
    "CompiledPredicate",
    "ConditionContext",
    "ContextShape",
    "CounterEmission",
    "InstrumentationScope",
    "LogBatch",
    "LogConsumer",
    "LogLevel",
    "LogRecord",
    "MetricsRecorder",
    "Resource",
    "ResourceLogs",
    "ResourceSpans",
    "ScopeLogs",
    "ScopeSpans",
    "Span",
    "SpanEvent",
    "SpanKind",
    "Status",
    "StatusCode",
    "TraceBatch",
    "attribute_as_string",
    "severity_number_for",
]
