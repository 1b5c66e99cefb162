# src/spanlog/engine/functions.py
"""Built-in condition functions and the function registry.

Names follow OTTL, with the lower-camel ``isMatch`` spelling kept as an
alias. Functions treat ``nil`` leniently: predicates on a missing value are
false, converters on a missing value return nil.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Mapping
from functools import lru_cache
from types import MappingProxyType
from typing import Any

import pluggy
import structlog

from spanlog.contracts.telemetry import attribute_as_string
from spanlog.engine.hookspecs import PROJECT_NAME, SpanlogConditionSpec, hookimpl

logger = structlog.get_logger(__name__)


class FunctionRegistryError(Exception):
    """Raised when function plugins cannot be registered or collide."""


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


def is_match(target: Any, pattern: str) -> bool:
    """True if the regex ``pattern`` matches anywhere in ``target``."""
    if target is None:
        return False
    return _compile_pattern(pattern).search(attribute_as_string(target)) is not None


def has_prefix(target: Any, prefix: str) -> bool:
    return isinstance(target, str) and target.startswith(prefix)


def has_suffix(target: Any, suffix: str) -> bool:
    return isinstance(target, str) and target.endswith(suffix)


def contains(target: Any, item: Any) -> bool:
    if isinstance(target, str):
        return isinstance(item, str) and item in target
    if isinstance(target, list | tuple):
        return item in target
    return False


def length(target: Any) -> int:
    if isinstance(target, str | bytes | list | tuple | Mapping):
        return len(target)
    raise TypeError(f"Len() expects a string, bytes, list or map, got {type(target).__name__}")


def is_string(value: Any) -> bool:
    return isinstance(value, str)


def is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_double(value: Any) -> bool:
    return isinstance(value, float)


def is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def is_map(value: Any) -> bool:
    return isinstance(value, Mapping)


def is_list(value: Any) -> bool:
    return isinstance(value, list | tuple)


def lower(value: Any) -> str | None:
    return None if value is None else attribute_as_string(value).lower()


def upper(value: Any) -> str | None:
    return None if value is None else attribute_as_string(value).upper()


def concat(values: list[Any], delimiter: str) -> str:
    return delimiter.join(attribute_as_string(v) for v in values)


def to_string(value: Any) -> str | None:
    return None if value is None else attribute_as_string(value)


BUILTIN_FUNCTIONS: Mapping[str, Callable[..., Any]] = MappingProxyType(
    {
        "IsMatch": is_match,
        "isMatch": is_match,
        "HasPrefix": has_prefix,
        "HasSuffix": has_suffix,
        "Contains": contains,
        "Len": length,
        "IsString": is_string,
        "IsInt": is_int,
        "IsDouble": is_double,
        "IsBool": is_bool,
        "IsMap": is_map,
        "IsList": is_list,
        "Lower": lower,
        "ToLowerCase": lower,
        "Upper": upper,
        "ToUpperCase": upper,
        "Concat": concat,
        "String": to_string,
    }
)


class BuiltinFunctionsPlugin:
    """Registers the built-in condition functions."""

    @hookimpl
    def spanlog_get_condition_functions(self) -> dict[str, Callable[..., Any]]:
        return dict(BUILTIN_FUNCTIONS)


def build_function_registry(
    function_plugins: Iterable[Any] = (),
) -> Mapping[str, Callable[..., Any]]:
    """Discover condition functions via pluggy hooks.

    Registers the built-in functions plus any plugin objects provided by the
    caller, then merges every ``spanlog_get_condition_functions`` result.

    Raises:
        FunctionRegistryError: If a plugin fails validation, returns something
            other than a name->callable dict, or reuses a function name.
    """
    plugin_manager = pluggy.PluginManager(PROJECT_NAME)
    plugin_manager.add_hookspecs(SpanlogConditionSpec)

    for plugin in [BuiltinFunctionsPlugin(), *function_plugins]:
        try:
            plugin_manager.register(plugin)
            plugin_manager.check_pending()
        except (pluggy.PluginValidationError, ValueError) as e:
            raise FunctionRegistryError(f"Failed to register condition function plugin {plugin!r}: {e}") from e

    registry: dict[str, Callable[..., Any]] = {}
    for contributed in plugin_manager.hook.spanlog_get_condition_functions():
        if not isinstance(contributed, dict):
            raise FunctionRegistryError(f"Condition function hooks must return a dict, got {type(contributed).__name__}")
        for name, func in contributed.items():
            if not isinstance(name, str) or not name.isidentifier():
                raise FunctionRegistryError(f"Invalid condition function name: {name!r}")
            if not callable(func):
                raise FunctionRegistryError(f"Condition function {name!r} is not callable")
            if name in registry:
                raise FunctionRegistryError(f"Duplicate condition function name: {name!r}")
            registry[name] = func

    logger.debug("Condition functions registered", count=len(registry))
    return MappingProxyType(registry)


_default_registry: Mapping[str, Callable[..., Any]] | None = None


def default_functions() -> Mapping[str, Callable[..., Any]]:
    """Registry of the built-in functions only (built once, read-only)."""
    global _default_registry
    if _default_registry is None:
        _default_registry = build_function_registry()
    return _default_registry
