"""Connector counters.

Two monotonic counters, recorded through the OpenTelemetry metrics API:

- ``spanlog.spans_handled``: spans that passed the span conditions
- ``spanlog.logs_produced``: log records produced from span events

Counting is best-effort: instrument creation or update failures are logged
at debug level and never reach the data path.
"""

from __future__ import annotations

import structlog
from opentelemetry import metrics
from opentelemetry.metrics import Counter, MeterProvider

logger = structlog.get_logger(__name__)

METER_NAME = "spanlog"
SPANS_HANDLED_COUNTER = "spanlog.spans_handled"
LOGS_PRODUCED_COUNTER = "spanlog.logs_produced"


class ConnectorMetrics:
    """Counter pair backed by an OpenTelemetry meter.

    Counter.add() is safe to call from concurrent transform calls.
    """

    def __init__(self, meter_provider: MeterProvider | None = None) -> None:
        """Create the counters.

        Args:
            meter_provider: Provider to take the meter from; the global
                provider when omitted (a no-op until one is configured)
        """
        self._spans_handled: Counter | None = None
        self._logs_produced: Counter | None = None

        try:
            meter = metrics.get_meter(METER_NAME, meter_provider=meter_provider)
        except Exception as exc:
            logger.debug("Failed to obtain meter", meter=METER_NAME, error=str(exc))
            return

        try:
            self._spans_handled = meter.create_counter(
                name=SPANS_HANDLED_COUNTER,
                description="Number of spans that passed connector span conditions",
                unit="{spans}",
            )
        except Exception as exc:
            logger.debug("Failed to create counter", counter=SPANS_HANDLED_COUNTER, error=str(exc))

        try:
            self._logs_produced = meter.create_counter(
                name=LOGS_PRODUCED_COUNTER,
                description="Number of logs produced from span events",
                unit="{logs}",
            )
        except Exception as exc:
            logger.debug("Failed to create counter", counter=LOGS_PRODUCED_COUNTER, error=str(exc))

    def record(self, *, spans_handled: int, logs_produced: int) -> None:
        """Add the per-call totals; zero totals are skipped."""
        if self._spans_handled is not None and spans_handled > 0:
            try:
                self._spans_handled.add(spans_handled)
            except Exception as exc:
                logger.debug("Failed to record metric", counter=SPANS_HANDLED_COUNTER, error=str(exc))
        if self._logs_produced is not None and logs_produced > 0:
            try:
                self._logs_produced.add(logs_produced)
            except Exception as exc:
                logger.debug("Failed to record metric", counter=LOGS_PRODUCED_COUNTER, error=str(exc))
