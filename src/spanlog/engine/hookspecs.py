# src/spanlog/engine/hookspecs.py
"""pluggy hook specifications for condition function plugins.

Plugins contribute extra functions to the condition language. The registry
calls these hooks when it is built, before any condition is compiled.

Usage (implementing a function plugin):
    from spanlog.engine.hookspecs import hookimpl

    class MyFunctionsPlugin:
        @hookimpl
        def spanlog_get_condition_functions(self):
            return {"IsHealthCheck": lambda name: name in ("/healthz", "/readyz")}
"""

from collections.abc import Callable
from typing import Any

import pluggy

PROJECT_NAME = "spanlog"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class SpanlogConditionSpec:
    """Hook specifications for condition function plugins."""

    @hookspec
    def spanlog_get_condition_functions(self) -> dict[str, Callable[..., Any]]:  # type: ignore[empty-body]
        """Return condition functions keyed by the name used in conditions.

        Functions receive already-evaluated argument values and must not
        modify them. Exceptions they raise become evaluation failures for the
        record being evaluated.
        """
