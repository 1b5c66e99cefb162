# src/spanlog/contracts/protocols.py
"""Protocols at the connector's collaborator boundaries.

The connector is handed its collaborators rather than reaching for
process-wide state:

- a compiled predicate per configured condition (span or event shape)
- a downstream log consumer
- an optional metrics recorder for the two connector counters
"""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from spanlog.contracts.context import ConditionContext
    from spanlog.contracts.enums import ContextShape
    from spanlog.contracts.telemetry import LogBatch


@runtime_checkable
class CompiledPredicate(Protocol):
    """A boolean expression compiled once at configuration time.

    Error handling:
        - Compilation problems are raised by whatever builds the predicate,
          before the connector starts.
        - evaluate() raises on runtime failures (type mismatch, bad regex...).
          The caller decides what a failure means; the connector logs it and
          treats the predicate as not matching.
        - evaluate() MUST NOT modify the context.
    """

    @property
    def source(self) -> str:
        """Expression text as configured, for diagnostics."""
        ...

    @property
    def shape(self) -> "ContextShape":
        """Context shape the predicate was compiled for."""
        ...

    def evaluate(self, context: "ConditionContext") -> object:
        """Evaluate against the context; only a result of ``True`` is a match."""
        ...


@runtime_checkable
class LogConsumer(Protocol):
    """Downstream consumer of produced log batches.

    consume() is called synchronously, at most once per transform call.
    Ownership of the batch passes to the consumer. Failures are raised and
    propagate to the transform caller; there is no retry.
    """

    def consume(self, batch: "LogBatch") -> None: ...


@runtime_checkable
class MetricsRecorder(Protocol):
    """Best-effort sink for the connector's two monotonic counters.

    record() MUST NOT raise; implementations swallow their own failures.
    It may be called concurrently from parallel transform calls.
    """

    def record(self, *, spans_handled: int, logs_produced: int) -> None: ...
