# src/spanlog/engine/synthesizer.py
"""Log record synthesis from matched span events."""

from __future__ import annotations

import copy

from spanlog.contracts.enums import LogLevel, severity_number_for
from spanlog.contracts.telemetry import (
    InstrumentationScope,
    LogBatch,
    LogRecord,
    Resource,
    ScopeLogs,
    Span,
    SpanEvent,
)
from spanlog.engine.templates import LogBodyTemplate, default_log_body

SPAN_ATTRIBUTE_PREFIX = "span."
EVENT_ATTRIBUTE_PREFIX = "event."


class LogSynthesizer:
    """Builds one log record per matched (span, event) pair.

    Each record gets its own ResourceLogs/ScopeLogs pair holding deep copies
    of the originating resource and scope, so the output batch never aliases
    the input batch.

    Attributes on the record:
        span.name, span.kind, event.name   always
        span.<key>                         every span attribute, if enabled
        event.<key>                        every event attribute, if enabled

    Projected values keep their original type; later keys overwrite earlier
    ones (a span attribute called ``name`` replaces ``span.name``).
    """

    def __init__(
        self,
        *,
        log_level: LogLevel | str = LogLevel.INFO,
        body_template: LogBodyTemplate | None = None,
        include_span_attributes: bool = True,
        include_event_attributes: bool = True,
    ) -> None:
        self._severity_text = str(log_level)
        self._severity_number = severity_number_for(self._severity_text)
        self._body_template = body_template
        self._include_span_attributes = include_span_attributes
        self._include_event_attributes = include_event_attributes

    def render_body(self, event: SpanEvent, span: Span) -> str:
        if self._body_template is None:
            return default_log_body(event)
        return self._body_template.render(event, span)

    def synthesize(
        self,
        event: SpanEvent,
        span: Span,
        resource: Resource,
        scope: InstrumentationScope,
        batch: LogBatch,
    ) -> LogRecord:
        """Append a new log record for ``event`` to ``batch`` and return it."""
        record = LogRecord(
            time_unix_nano=event.time_unix_nano,
            severity_text=self._severity_text,
            severity_number=self._severity_number,
            body=self.render_body(event, span),
            trace_id=span.trace_id,
            span_id=span.span_id,
            # trace state is not propagated
            flags=0,
        )

        attributes = record.attributes
        attributes["span.name"] = span.name
        attributes["span.kind"] = str(span.kind)
        attributes["event.name"] = event.name

        if self._include_span_attributes:
            for key, value in span.attributes.items():
                attributes[SPAN_ATTRIBUTE_PREFIX + key] = copy.deepcopy(value)

        if self._include_event_attributes:
            for key, value in event.attributes.items():
                attributes[EVENT_ATTRIBUTE_PREFIX + key] = copy.deepcopy(value)

        resource_logs = batch.append_resource_logs(resource)
        resource_logs.scope_logs.append(ScopeLogs(scope=scope.copy(), log_records=[record]))
        return record
