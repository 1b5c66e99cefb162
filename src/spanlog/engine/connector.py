# src/spanlog/engine/connector.py
"""Span-events-to-logs connector.

Walks each trace batch resource -> scope -> span -> event, keeps the spans
and events that match the configured conditions, and hands one log batch per
call to the downstream consumer.

Concurrency:
    transform() keeps all per-call state (output batch, counts) on the stack.
    The compiled conditions and the body template are built once in the
    constructor and only read afterwards, so one connector may serve
    concurrent transform() calls. Counters are added through the metrics
    recorder, which tolerates concurrent updates.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from spanlog.contracts.context import ConditionContext
from spanlog.contracts.enums import ContextShape, CounterEmission
from spanlog.contracts.protocols import CompiledPredicate, LogConsumer, MetricsRecorder
from spanlog.contracts.telemetry import LogBatch, TraceBatch
from spanlog.core.config import ConnectorConfigError, ConnectorSettings
from spanlog.core.logging import transform_log_context
from spanlog.engine.conditions import ConditionError, compile_conditions
from spanlog.engine.functions import FunctionRegistryError, build_function_registry
from spanlog.engine.matching import matches
from spanlog.engine.metrics import ConnectorMetrics
from spanlog.engine.synthesizer import LogSynthesizer
from spanlog.engine.templates import LogBodyTemplate, TemplateValidationError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Capabilities:
    mutates_data: bool = False


@dataclass(frozen=True)
class TransformSummary:
    """Counts from one transform call."""

    spans_handled: int
    logs_produced: int
    forwarded: bool


class SpanEventsToLogsConnector:
    """Turns matching span events into log records.

    Example:
        connector = create_connector(settings, consumer)
        connector.transform(batch)  # consumer.consume() called if anything matched
    """

    def __init__(
        self,
        *,
        consumer: LogConsumer,
        synthesizer: LogSynthesizer,
        span_predicates: tuple[CompiledPredicate, ...] = (),
        event_predicates: tuple[CompiledPredicate, ...] = (),
        metrics: MetricsRecorder | None = None,
        counter_emission: CounterEmission = CounterEmission.EMPTY_BATCH_ONLY,
    ) -> None:
        self._consumer = consumer
        self._synthesizer = synthesizer
        self._span_predicates = span_predicates
        self._event_predicates = event_predicates
        self._metrics = metrics
        self._counter_emission = counter_emission

    @property
    def capabilities(self) -> Capabilities:
        return Capabilities(mutates_data=False)

    def start(self) -> None:
        pass

    def shutdown(self) -> None:
        pass

    def transform(self, batch: TraceBatch) -> TransformSummary:
        """Produce logs for the matching events of one trace batch.

        Span conditions gate event conditions: events of a span that does not
        match are never evaluated.

        Returns:
            Per-call counts

        Raises:
            Exception: Whatever the downstream consumer raises, unchanged
        """
        logs = LogBatch()
        with transform_log_context(spans_in_batch=batch.span_count()):
            spans_handled, logs_produced = self._collect(batch, logs)

        if logs.resource_logs:
            self._consumer.consume(logs)
            logger.debug(
                "Forwarded log batch",
                spans_handled=spans_handled,
                logs_produced=logs_produced,
            )
            if self._counter_emission is CounterEmission.ALWAYS:
                self._record_counters(spans_handled, logs_produced)
            return TransformSummary(spans_handled, logs_produced, forwarded=True)

        self._record_counters(spans_handled, logs_produced)
        return TransformSummary(spans_handled, logs_produced, forwarded=False)

    def _collect(self, batch: TraceBatch, logs: LogBatch) -> tuple[int, int]:
        """Append a record to ``logs`` for every matching event.

        Returns:
            (spans that matched, records produced)
        """
        spans_handled = 0
        logs_produced = 0
        for resource_spans in batch.resource_spans:
            resource = resource_spans.resource
            for scope_spans in resource_spans.scope_spans:
                scope = scope_spans.scope
                for span in scope_spans.spans:
                    span_context = ConditionContext(resource, scope, span)
                    if not matches(span_context, self._span_predicates):
                        continue
                    spans_handled += 1
                    for event in span.events:
                        if matches(span_context.with_event(event), self._event_predicates):
                            self._synthesizer.synthesize(event, span, resource, scope, logs)
                            logs_produced += 1
        return spans_handled, logs_produced

    def _record_counters(self, spans_handled: int, logs_produced: int) -> None:
        if self._metrics is None:
            return
        try:
            self._metrics.record(spans_handled=spans_handled, logs_produced=logs_produced)
        except Exception as exc:
            logger.debug("Failed to record connector counters", error=str(exc))


_DEFAULT_METRICS: Any = object()


def create_connector(
    settings: ConnectorSettings,
    consumer: LogConsumer,
    *,
    meter_provider: Any = None,
    metrics: MetricsRecorder | None = _DEFAULT_METRICS,
    function_plugins: Iterable[Any] = (),
) -> SpanEventsToLogsConnector:
    """Build a ready connector from validated settings.

    Compiles every condition, validates the body template and creates the
    counters. Nothing is evaluated against data here.

    Args:
        settings: Connector settings
        consumer: Downstream log consumer
        meter_provider: OpenTelemetry MeterProvider for the counters; the
            global provider when omitted
        metrics: Explicit metrics recorder, or None to disable counting
        function_plugins: pluggy plugins contributing condition functions

    Raises:
        ConnectorConfigError: If anything fails to compile
    """
    try:
        functions: Mapping[str, Callable[..., Any]] = build_function_registry(function_plugins)
        span_predicates = compile_conditions(list(settings.span_conditions), ContextShape.SPAN, functions)
        event_predicates = compile_conditions(list(settings.event_conditions), ContextShape.EVENT, functions)
        body_template = LogBodyTemplate(settings.log_body_template) if settings.log_body_template else None
    except (ConditionError, TemplateValidationError, FunctionRegistryError) as e:
        raise ConnectorConfigError(str(e)) from e

    if metrics is _DEFAULT_METRICS:
        metrics = ConnectorMetrics(meter_provider)

    synthesizer = LogSynthesizer(
        log_level=settings.log_level,
        body_template=body_template,
        include_span_attributes=settings.include_span_attributes,
        include_event_attributes=settings.include_event_attributes,
    )

    logger.info(
        "Connector configured",
        span_conditions=len(span_predicates),
        event_conditions=len(event_predicates),
        log_level=str(settings.log_level),
        counter_emission=str(settings.counter_emission),
    )

    return SpanEventsToLogsConnector(
        consumer=consumer,
        synthesizer=synthesizer,
        span_predicates=span_predicates,
        event_predicates=event_predicates,
        metrics=metrics,
        counter_emission=settings.counter_emission,
    )
