# src/spanlog/contracts/telemetry.py
"""Trace and log batch models.

These mirror the collector's pdata nesting:

    TraceBatch -> ResourceSpans -> ScopeSpans -> Span -> SpanEvent
    LogBatch -> ResourceLogs -> ScopeLogs -> LogRecord

Trace and span IDs are lowercase hex strings (32 and 16 characters); an
empty string means "not set". Timestamps are integer nanoseconds since the
Unix epoch. Attribute sets are plain dicts whose values keep their native
type (str, bool, int, float, bytes, lists and string-keyed maps of those).
"""

from __future__ import annotations

import base64
import copy
import json
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from opentelemetry._logs import SeverityNumber

from spanlog.contracts.enums import SpanKind, StatusCode

AttributeValue: TypeAlias = str | bool | int | float | bytes | list[Any] | dict[str, Any]
Attributes: TypeAlias = dict[str, AttributeValue]


def attribute_as_string(value: Any) -> str:
    """Render an attribute value as text.

    Follows the collector's ``Value.AsString()``: strings unchanged, booleans
    as ``true``/``false``, integral floats without a trailing ``.0``, bytes
    base64-encoded, lists and maps as compact JSON with map keys sorted.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if value is None:
        return ""
    return json.dumps(_jsonable(value), separators=(",", ":"), ensure_ascii=False, sort_keys=True)


def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(v) for v in value]
    return value


@dataclass
class Resource:
    """Attribute set identifying the entity that emitted the telemetry."""

    attributes: Attributes = field(default_factory=dict)
    dropped_attributes_count: int = 0

    def copy(self) -> Resource:
        return copy.deepcopy(self)


@dataclass
class InstrumentationScope:
    """Library or code path that produced the spans."""

    name: str = ""
    version: str = ""
    attributes: Attributes = field(default_factory=dict)
    dropped_attributes_count: int = 0

    def copy(self) -> InstrumentationScope:
        return copy.deepcopy(self)


@dataclass
class SpanEvent:
    """A timestamped occurrence inside a span's lifetime."""

    name: str
    time_unix_nano: int
    attributes: Attributes = field(default_factory=dict)
    dropped_attributes_count: int = 0


@dataclass
class Status:
    code: StatusCode = StatusCode.UNSET
    message: str = ""


@dataclass
class Span:
    trace_id: str
    span_id: str
    name: str
    kind: SpanKind = SpanKind.UNSPECIFIED
    parent_span_id: str = ""
    trace_state: str = ""
    start_time_unix_nano: int = 0
    end_time_unix_nano: int = 0
    attributes: Attributes = field(default_factory=dict)
    events: list[SpanEvent] = field(default_factory=list)
    status: Status = field(default_factory=Status)
    flags: int = 0
    dropped_attributes_count: int = 0


@dataclass
class ScopeSpans:
    scope: InstrumentationScope = field(default_factory=InstrumentationScope)
    spans: list[Span] = field(default_factory=list)
    schema_url: str = ""


@dataclass
class ResourceSpans:
    resource: Resource = field(default_factory=Resource)
    scope_spans: list[ScopeSpans] = field(default_factory=list)
    schema_url: str = ""


@dataclass
class TraceBatch:
    """One upstream delivery of spans, grouped by resource and scope."""

    resource_spans: list[ResourceSpans] = field(default_factory=list)

    def span_count(self) -> int:
        return sum(len(ss.spans) for rs in self.resource_spans for ss in rs.scope_spans)


@dataclass
class LogRecord:
    time_unix_nano: int
    severity_text: str
    severity_number: SeverityNumber
    body: str
    trace_id: str = ""
    span_id: str = ""
    flags: int = 0
    observed_time_unix_nano: int = 0
    attributes: Attributes = field(default_factory=dict)


@dataclass
class ScopeLogs:
    scope: InstrumentationScope = field(default_factory=InstrumentationScope)
    log_records: list[LogRecord] = field(default_factory=list)
    schema_url: str = ""


@dataclass
class ResourceLogs:
    resource: Resource = field(default_factory=Resource)
    scope_logs: list[ScopeLogs] = field(default_factory=list)
    schema_url: str = ""


@dataclass
class LogBatch:
    """Log records handed to the downstream consumer in one call."""

    resource_logs: list[ResourceLogs] = field(default_factory=list)

    def append_resource_logs(self, resource: Resource) -> ResourceLogs:
        """Append a ResourceLogs entry holding a deep copy of ``resource``."""
        entry = ResourceLogs(resource=resource.copy())
        self.resource_logs.append(entry)
        return entry

    def log_record_count(self) -> int:
        return sum(len(sl.log_records) for rl in self.resource_logs for sl in rl.scope_logs)

    def __len__(self) -> int:
        return len(self.resource_logs)
