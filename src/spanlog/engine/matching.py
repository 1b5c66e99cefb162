"""Predicate evaluation over a layered context.

Semantics:
- An empty predicate list matches everything ("no conditions" means
  "process everything").
- Predicates are tried in configured order; the first one whose result is
  the boolean ``True`` wins (OR across predicates, short-circuit).
- A predicate that fails at runtime is logged and counts as not matching;
  evaluation moves on to the next predicate.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from spanlog.contracts.context import ConditionContext
from spanlog.contracts.protocols import CompiledPredicate

logger = structlog.get_logger(__name__)


def matches(context: ConditionContext, predicates: Sequence[CompiledPredicate]) -> bool:
    """Return True if any predicate matches the context.

    Args:
        context: Resource, scope, span and (for event predicates) the event
        predicates: Compiled predicates sharing the context's shape

    Returns:
        True for an empty list or on the first predicate evaluating to True
    """
    if not predicates:
        return True

    for predicate in predicates:
        try:
            result = predicate.evaluate(context)
        except Exception as e:
            logger.error(
                "Failed to evaluate condition",
                shape=str(context.shape),
                condition=predicate.source,
                error=str(e),
                error_type=type(e).__name__,
            )
            continue
        if result is True:
            return True
    return False
