# src/spanlog/adapters/otel.py
"""OpenTelemetry SDK integration.

Runs the connector inline in a Python ``TracerProvider`` pipeline:

    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import SimpleSpanProcessor

    connector = create_connector(settings, consumer)
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(SpanEventsLogExporter(connector)))

Finished SDK spans are converted to a TraceBatch, grouped by resource and
instrumentation scope in first-seen order, and handed to transform().
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult
from opentelemetry.trace import SpanKind as OtelSpanKind
from opentelemetry.trace import StatusCode as OtelStatusCode

from spanlog.contracts.enums import SpanKind, StatusCode
from spanlog.contracts.telemetry import (
    Attributes,
    InstrumentationScope,
    Resource,
    ResourceSpans,
    ScopeSpans,
    Span,
    SpanEvent,
    Status,
    TraceBatch,
)

if TYPE_CHECKING:
    from spanlog.engine.connector import SpanEventsToLogsConnector

logger = structlog.get_logger(__name__)

# The SDK enum has no "unspecified" member and numbers kinds from 0
_KIND_BY_OTEL: dict[OtelSpanKind, SpanKind] = {
    OtelSpanKind.INTERNAL: SpanKind.INTERNAL,
    OtelSpanKind.SERVER: SpanKind.SERVER,
    OtelSpanKind.CLIENT: SpanKind.CLIENT,
    OtelSpanKind.PRODUCER: SpanKind.PRODUCER,
    OtelSpanKind.CONSUMER: SpanKind.CONSUMER,
}

_STATUS_BY_OTEL: dict[OtelStatusCode, StatusCode] = {
    OtelStatusCode.UNSET: StatusCode.UNSET,
    OtelStatusCode.OK: StatusCode.OK,
    OtelStatusCode.ERROR: StatusCode.ERROR,
}


def _attributes(attributes: Mapping[str, Any] | None) -> Attributes:
    # SDK sequences are tuples
    if not attributes:
        return {}
    return {key: list(value) if isinstance(value, tuple) else value for key, value in attributes.items()}


def _scope_key(span: ReadableSpan) -> tuple[str, str]:
    scope = span.instrumentation_scope
    if scope is None:
        return ("", "")
    return (scope.name, scope.version or "")


def _convert_scope(span: ReadableSpan) -> InstrumentationScope:
    scope = span.instrumentation_scope
    if scope is None:
        return InstrumentationScope()
    return InstrumentationScope(
        name=scope.name,
        version=scope.version or "",
        attributes=_attributes(scope.attributes),
    )


def convert_span(span: ReadableSpan) -> Span:
    """Convert one finished SDK span."""
    context = span.context
    parent = span.parent
    return Span(
        trace_id=format(context.trace_id, "032x") if context is not None else "",
        span_id=format(context.span_id, "016x") if context is not None else "",
        parent_span_id=format(parent.span_id, "016x") if parent is not None else "",
        trace_state=context.trace_state.to_header() if context is not None and context.trace_state else "",
        name=span.name,
        kind=_KIND_BY_OTEL.get(span.kind, SpanKind.UNSPECIFIED),
        start_time_unix_nano=span.start_time or 0,
        end_time_unix_nano=span.end_time or 0,
        attributes=_attributes(span.attributes),
        events=[
            SpanEvent(
                name=event.name,
                time_unix_nano=event.timestamp or 0,
                attributes=_attributes(event.attributes),
            )
            for event in span.events
        ],
        status=Status(
            code=_STATUS_BY_OTEL[span.status.status_code],
            message=span.status.description or "",
        ),
        flags=int(context.trace_flags) if context is not None else 0,
        dropped_attributes_count=span.dropped_attributes,
    )


def trace_batch_from_readable_spans(spans: Sequence[ReadableSpan]) -> TraceBatch:
    """Group SDK spans by resource, then by instrumentation scope.

    Groups keep the order in which their first span appears; spans keep
    their input order inside a group.
    """
    batch = TraceBatch()
    by_resource: dict[int, tuple[ResourceSpans, dict[tuple[str, str], ScopeSpans]]] = {}

    for span in spans:
        # SDK resources are shared per provider; identity groups them
        resource_key = id(span.resource)
        if resource_key not in by_resource:
            resource_spans = ResourceSpans(
                resource=Resource(attributes=_attributes(span.resource.attributes if span.resource else None)),
                schema_url=(span.resource.schema_url if span.resource else "") or "",
            )
            batch.resource_spans.append(resource_spans)
            by_resource[resource_key] = (resource_spans, {})
        resource_spans, scopes = by_resource[resource_key]

        scope_key = _scope_key(span)
        if scope_key not in scopes:
            scope_spans = ScopeSpans(scope=_convert_scope(span))
            resource_spans.scope_spans.append(scope_spans)
            scopes[scope_key] = scope_spans
        scopes[scope_key].spans.append(convert_span(span))

    return batch


class SpanEventsLogExporter(SpanExporter):
    """SpanExporter that feeds finished spans to the connector.

    Export failures (including downstream consumer errors) are logged and
    reported as FAILURE to the span processor.
    """

    def __init__(self, connector: SpanEventsToLogsConnector) -> None:
        self._connector = connector

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        try:
            self._connector.transform(trace_batch_from_readable_spans(spans))
        except Exception as e:
            logger.error(
                "Failed to export span events as logs",
                span_count=len(spans),
                error=str(e),
                error_type=type(e).__name__,
            )
            return SpanExportResult.FAILURE
        return SpanExportResult.SUCCESS

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True
