"""Layered evaluation context for span and event conditions."""

from __future__ import annotations

from dataclasses import dataclass

from spanlog.contracts.enums import ContextShape
from spanlog.contracts.telemetry import InstrumentationScope, Resource, Span, SpanEvent


@dataclass(frozen=True, slots=True)
class ConditionContext:
    """Resource, scope, span and (for event conditions) the span event.

    The context only references the batch's objects; conditions read through
    it and never write back.
    """

    resource: Resource
    scope: InstrumentationScope
    span: Span
    event: SpanEvent | None = None

    @property
    def shape(self) -> ContextShape:
        return ContextShape.SPAN if self.event is None else ContextShape.EVENT

    def with_event(self, event: SpanEvent) -> ConditionContext:
        return ConditionContext(self.resource, self.scope, self.span, event)
