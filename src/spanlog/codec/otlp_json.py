# src/spanlog/codec/otlp_json.py
"""OTLP/JSON encoding for trace and log batches.

Payloads are parsed into and printed from the generated ``opentelemetry-proto``
messages with protobuf's ``json_format``; this module only maps those messages
to and from the connector's dataclasses.

OTLP/JSON differs from the plain proto3 JSON mapping in one place: trace and
span IDs are hex strings instead of base64. IDs are rewritten on the way in
and on the way out. Unknown fields are ignored, as OTLP receivers do.
"""

from __future__ import annotations

import base64
from typing import Any

from google.protobuf import json_format
from opentelemetry.proto.collector.logs.v1.logs_service_pb2 import ExportLogsServiceRequest
from opentelemetry.proto.collector.trace.v1.trace_service_pb2 import ExportTraceServiceRequest
from opentelemetry.proto.common.v1 import common_pb2
from opentelemetry.proto.logs.v1 import logs_pb2
from opentelemetry.proto.resource.v1 import resource_pb2
from opentelemetry.proto.trace.v1 import trace_pb2

from spanlog.contracts.enums import SpanKind, StatusCode
from spanlog.contracts.telemetry import (
    Attributes,
    InstrumentationScope,
    LogBatch,
    LogRecord,
    Resource,
    ResourceSpans,
    ScopeSpans,
    Span,
    SpanEvent,
    Status,
    TraceBatch,
)

__all__ = [
    "OTLPJsonError",
    "decode_any_value",
    "decode_trace_batch",
    "encode_any_value",
    "encode_log_batch",
]

# Byte length of each hex-encoded ID field
_ID_FIELDS: dict[str, int] = {"traceId": 16, "spanId": 8, "parentSpanId": 8}

_STATUS_BY_PROTO: dict[int, StatusCode] = {
    trace_pb2.Status.STATUS_CODE_UNSET: StatusCode.UNSET,
    trace_pb2.Status.STATUS_CODE_OK: StatusCode.OK,
    trace_pb2.Status.STATUS_CODE_ERROR: StatusCode.ERROR,
}


class OTLPJsonError(ValueError):
    """Raised when an OTLP/JSON payload is malformed."""


def _hex_ids_to_base64(value: Any) -> Any:
    """Copy of a parsed payload with hex IDs rewritten for ``json_format``."""
    if isinstance(value, list):
        return [_hex_ids_to_base64(item) for item in value]
    if not isinstance(value, dict):
        return value
    converted: dict[str, Any] = {}
    for key, item in value.items():
        if key in _ID_FIELDS and isinstance(item, str):
            converted[key] = _hex_to_base64(item, _ID_FIELDS[key], key)
        else:
            converted[key] = _hex_ids_to_base64(item)
    return converted


def _hex_to_base64(raw: str, size: int, field: str) -> str:
    if not raw:
        return ""
    try:
        data = bytes.fromhex(raw)
    except ValueError:
        data = b""
    if len(data) != size:
        raise OTLPJsonError(f"{field} must be {size * 2} hex characters, got {raw!r}")
    return base64.b64encode(data).decode("ascii")


def _base64_ids_to_hex(value: Any) -> Any:
    if isinstance(value, list):
        return [_base64_ids_to_hex(item) for item in value]
    if not isinstance(value, dict):
        return value
    return {
        key: base64.b64decode(item).hex() if key in _ID_FIELDS else _base64_ids_to_hex(item)
        for key, item in value.items()
    }


def _parse(payload: Any, message: Any, what: str) -> Any:
    if not isinstance(payload, dict):
        raise OTLPJsonError(f"{what} must be an object, got {type(payload).__name__}")
    try:
        return json_format.ParseDict(_hex_ids_to_base64(payload), message, ignore_unknown_fields=True)
    except json_format.ParseError as e:
        raise OTLPJsonError(f"invalid {what}: {e}") from e


def _print(message: Any) -> dict[str, Any]:
    printed: dict[str, Any] = json_format.MessageToDict(message, use_integers_for_enums=True)
    return _base64_ids_to_hex(printed)


# -- decoding -----------------------------------------------------------------


def _from_any_value(value: common_pb2.AnyValue) -> Any:
    kind = value.WhichOneof("value")
    if kind is None:
        return None
    if kind == "array_value":
        return [_from_any_value(v) for v in value.array_value.values]
    if kind == "kvlist_value":
        return _from_key_values(value.kvlist_value.values)
    return getattr(value, kind)


def _from_key_values(items: Any) -> Attributes:
    # later keys win
    return {item.key: _from_any_value(item.value) for item in items}


def decode_any_value(value: Any) -> Any:
    """Decode an OTLP/JSON ``AnyValue`` object into a native Python value.

    An empty object decodes to None.

    Raises:
        OTLPJsonError: If the object is not a valid AnyValue
    """
    return _from_any_value(_parse(value, common_pb2.AnyValue(), "AnyValue"))


def _from_resource(resource: resource_pb2.Resource) -> Resource:
    return Resource(
        attributes=_from_key_values(resource.attributes),
        dropped_attributes_count=resource.dropped_attributes_count,
    )


def _from_scope(scope: common_pb2.InstrumentationScope) -> InstrumentationScope:
    return InstrumentationScope(
        name=scope.name,
        version=scope.version,
        attributes=_from_key_values(scope.attributes),
        dropped_attributes_count=scope.dropped_attributes_count,
    )


def _from_event(event: trace_pb2.Span.Event) -> SpanEvent:
    return SpanEvent(
        name=event.name,
        time_unix_nano=event.time_unix_nano,
        attributes=_from_key_values(event.attributes),
        dropped_attributes_count=event.dropped_attributes_count,
    )


def _from_span(span: trace_pb2.Span) -> Span:
    try:
        kind = SpanKind.from_proto(span.kind)
    except KeyError as e:
        raise OTLPJsonError(f"unknown span kind: {span.kind}") from e
    try:
        code = _STATUS_BY_PROTO[span.status.code]
    except KeyError as e:
        raise OTLPJsonError(f"unknown status code: {span.status.code}") from e
    return Span(
        trace_id=span.trace_id.hex(),
        span_id=span.span_id.hex(),
        parent_span_id=span.parent_span_id.hex(),
        trace_state=span.trace_state,
        name=span.name,
        kind=kind,
        start_time_unix_nano=span.start_time_unix_nano,
        end_time_unix_nano=span.end_time_unix_nano,
        attributes=_from_key_values(span.attributes),
        events=[_from_event(e) for e in span.events],
        status=Status(code=code, message=span.status.message),
        flags=span.flags,
        dropped_attributes_count=span.dropped_attributes_count,
    )


def decode_trace_batch(payload: Any) -> TraceBatch:
    """Decode an OTLP/JSON ``ExportTraceServiceRequest`` object.

    Args:
        payload: Parsed JSON (``{"resourceSpans": [...]}``)

    Raises:
        OTLPJsonError: If the payload does not follow the OTLP/JSON mapping
    """
    request: ExportTraceServiceRequest = _parse(payload, ExportTraceServiceRequest(), "trace payload")
    return TraceBatch(
        resource_spans=[
            ResourceSpans(
                resource=_from_resource(rs.resource),
                scope_spans=[
                    ScopeSpans(
                        scope=_from_scope(ss.scope),
                        spans=[_from_span(s) for s in ss.spans],
                        schema_url=ss.schema_url,
                    )
                    for ss in rs.scope_spans
                ],
                schema_url=rs.schema_url,
            )
            for rs in request.resource_spans
        ]
    )


# -- encoding -----------------------------------------------------------------


def _to_any_value(value: Any) -> common_pb2.AnyValue:
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return common_pb2.AnyValue(bool_value=value)
    if isinstance(value, int):
        return common_pb2.AnyValue(int_value=value)
    if isinstance(value, float):
        return common_pb2.AnyValue(double_value=value)
    if isinstance(value, str):
        return common_pb2.AnyValue(string_value=value)
    if isinstance(value, bytes):
        return common_pb2.AnyValue(bytes_value=value)
    if isinstance(value, list | tuple):
        return common_pb2.AnyValue(array_value=common_pb2.ArrayValue(values=[_to_any_value(v) for v in value]))
    if isinstance(value, dict):
        return common_pb2.AnyValue(kvlist_value=common_pb2.KeyValueList(values=_to_key_values(value)))
    if value is None:
        return common_pb2.AnyValue()
    raise OTLPJsonError(f"cannot encode attribute value of type {type(value).__name__}")


def _to_key_values(attributes: Attributes) -> list[common_pb2.KeyValue]:
    key_values = []
    for key, value in attributes.items():
        key_value = common_pb2.KeyValue(key=key)
        key_value.value.CopyFrom(_to_any_value(value))
        # an empty value still prints as {}
        key_value.value.SetInParent()
        key_values.append(key_value)
    return key_values


def encode_any_value(value: Any) -> dict[str, Any]:
    """Encode a native attribute value as an OTLP/JSON ``AnyValue`` object."""
    return _print(_to_any_value(value))


def _to_log_record(record: LogRecord) -> logs_pb2.LogRecord:
    return logs_pb2.LogRecord(
        time_unix_nano=record.time_unix_nano,
        observed_time_unix_nano=record.observed_time_unix_nano,
        severity_number=int(record.severity_number.value),
        severity_text=record.severity_text,
        body=common_pb2.AnyValue(string_value=record.body),
        attributes=_to_key_values(record.attributes),
        flags=record.flags,
        trace_id=bytes.fromhex(record.trace_id),
        span_id=bytes.fromhex(record.span_id),
    )


def encode_log_batch(batch: LogBatch) -> dict[str, Any]:
    """Encode a log batch as an OTLP/JSON ``ExportLogsServiceRequest`` object.

    Default values (zero flags, empty strings, empty lists) are omitted, as
    in any proto3 JSON output.
    """
    request = ExportLogsServiceRequest(
        resource_logs=[
            logs_pb2.ResourceLogs(
                resource=resource_pb2.Resource(
                    attributes=_to_key_values(rl.resource.attributes),
                    dropped_attributes_count=rl.resource.dropped_attributes_count,
                ),
                scope_logs=[
                    logs_pb2.ScopeLogs(
                        scope=common_pb2.InstrumentationScope(
                            name=sl.scope.name,
                            version=sl.scope.version,
                            attributes=_to_key_values(sl.scope.attributes),
                            dropped_attributes_count=sl.scope.dropped_attributes_count,
                        ),
                        log_records=[_to_log_record(r) for r in sl.log_records],
                        schema_url=sl.schema_url,
                    )
                    for sl in rl.scope_logs
                ],
                schema_url=rl.schema_url,
            )
            for rl in batch.resource_logs
        ]
    )
    return _print(request)
