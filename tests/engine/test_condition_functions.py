# tests/engine/test_condition_functions.py
"""Tests for built-in condition functions and the pluggy function registry."""

from collections.abc import Callable
from typing import Any

import pytest

from spanlog.contracts import ContextShape
from spanlog.engine.conditions import Condition
from spanlog.engine.functions import (
    BUILTIN_FUNCTIONS,
    FunctionRegistryError,
    build_function_registry,
    concat,
    contains,
    default_functions,
    has_prefix,
    has_suffix,
    is_int,
    is_match,
    length,
    lower,
    to_string,
)
from spanlog.engine.hookspecs import hookimpl
from tests.fixtures.factories import make_context, make_span


class TestBuiltinFunctions:
    """Behaviour of the built-in functions on their own."""

    def test_is_match_searches_anywhere(self) -> None:
        assert is_match("GET /api/cart", "api") is True
        assert is_match("GET /api/cart", "^api") is False

    def test_is_match_stringifies_non_strings(self) -> None:
        assert is_match(503, "^5") is True
        assert is_match(True, "true") is True

    def test_prefix_and_suffix_require_strings(self) -> None:
        assert has_prefix("GET /x", "GET") is True
        assert has_suffix("GET /x", "/x") is True
        assert has_prefix(None, "GET") is False
        assert has_suffix(42, "2") is False

    def test_contains_string_and_list(self) -> None:
        assert contains("timeout exceeded", "timeout") is True
        assert contains(["a", "b"], "b") is True
        assert contains(None, "x") is False

    def test_length_rejects_scalars(self) -> None:
        assert length({"a": 1}) == 1
        with pytest.raises(TypeError, match="Len"):
            length(5)

    def test_is_int_excludes_bool(self) -> None:
        assert is_int(1) is True
        assert is_int(True) is False

    def test_converters_pass_nil_through(self) -> None:
        assert lower(None) is None
        assert to_string(None) is None
        assert lower("MiXeD") == "mixed"
        assert to_string(1.0) == "1"

    def test_concat(self) -> None:
        assert concat(["a", 1, True], "-") == "a-1-true"

    def test_aliases_share_implementation(self) -> None:
        assert BUILTIN_FUNCTIONS["isMatch"] is BUILTIN_FUNCTIONS["IsMatch"]
        assert BUILTIN_FUNCTIONS["ToLowerCase"] is BUILTIN_FUNCTIONS["Lower"]


class _HealthCheckPlugin:
    @hookimpl
    def spanlog_get_condition_functions(self) -> dict[str, Callable[..., Any]]:
        return {"IsHealthCheck": lambda name: name in ("/healthz", "/readyz")}


class _DuplicatePlugin:
    @hookimpl
    def spanlog_get_condition_functions(self) -> dict[str, Callable[..., Any]]:
        return {"IsMatch": lambda target, pattern: True}


class _BadReturnPlugin:
    @hookimpl
    def spanlog_get_condition_functions(self) -> Any:
        return ["not", "a", "dict"]


class _BadNamePlugin:
    @hookimpl
    def spanlog_get_condition_functions(self) -> dict[str, Any]:
        return {"not an identifier": lambda: True}


class _NotCallablePlugin:
    @hookimpl
    def spanlog_get_condition_functions(self) -> dict[str, Any]:
        return {"Answer": 42}


class TestFunctionRegistry:
    """Plugins contribute functions through the pluggy hook."""

    def test_default_registry_is_builtins(self) -> None:
        assert dict(default_functions()) == dict(BUILTIN_FUNCTIONS)

    def test_registry_is_read_only(self) -> None:
        registry = build_function_registry()
        with pytest.raises(TypeError):
            registry["Extra"] = len  # type: ignore[index]

    def test_plugin_function_usable_in_conditions(self) -> None:
        registry = build_function_registry([_HealthCheckPlugin()])
        condition = Condition("IsHealthCheck(name)", ContextShape.SPAN, registry)
        assert condition.evaluate(make_context(make_span("/readyz"))) is True
        assert condition.evaluate(make_context(make_span("/api"))) is False

    def test_duplicate_name_rejected(self) -> None:
        with pytest.raises(FunctionRegistryError, match="Duplicate condition function name: 'IsMatch'"):
            build_function_registry([_DuplicatePlugin()])

    def test_non_dict_result_rejected(self) -> None:
        with pytest.raises(FunctionRegistryError, match="must return a dict"):
            build_function_registry([_BadReturnPlugin()])

    def test_invalid_name_rejected(self) -> None:
        with pytest.raises(FunctionRegistryError, match="Invalid condition function name"):
            build_function_registry([_BadNamePlugin()])

    def test_non_callable_rejected(self) -> None:
        with pytest.raises(FunctionRegistryError, match="is not callable"):
            build_function_registry([_NotCallablePlugin()])

    def test_same_plugin_twice_rejected(self) -> None:
        plugin = _HealthCheckPlugin()
        with pytest.raises(FunctionRegistryError, match="Failed to register"):
            build_function_registry([plugin, plugin])
