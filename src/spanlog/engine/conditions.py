# src/spanlog/engine/conditions.py
"""Safe condition language for span and event filtering.

Conditions are OTTL-flavoured boolean expressions such as::

    isMatch(span.name, "GET") and attributes["http.status_code"] >= 500
    name == "exception" and resource.attributes["service.name"] != nil

They are parsed with Python's ast module and evaluated by a whitelist
interpreter. This is NOT eval().

The parser operates in two phases:
1. Compile-time validation: reject forbidden constructs, unknown context
   paths and unknown functions when the connector is configured
2. Evaluation: walk the validated AST against a ConditionContext

A condition is compiled for one ContextShape. Span conditions see the
resource, the instrumentation scope and the span; event conditions also see
the span event, and bare field names (``name``, ``attributes``) refer to the
innermost layer of the shape.
"""

from __future__ import annotations

import ast
import inspect
import operator
import re
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from spanlog.contracts.context import ConditionContext
from spanlog.contracts.enums import ContextShape, SpanKind, StatusCode


class ConditionError(Exception):
    """Base class for condition errors."""


class ConditionSecurityError(ConditionError):
    """Raised when a condition contains forbidden constructs or unknown paths."""


class ConditionSyntaxError(ConditionError):
    """Raised when a condition is not valid syntax or calls a function wrongly."""


class ConditionEvaluationError(ConditionError):
    """Raised when a valid condition fails against a particular context.

    Wraps operational errors (TypeError from comparing mismatched types,
    re.error from a bad pattern, IndexError...). The original exception is
    chained via __cause__.
    """


_COMPARISON_OPS: dict[type[ast.cmpop], Any] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_BINARY_OPS: dict[type[ast.operator], Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPS: dict[type[ast.unaryop], Any] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
}

# OTTL literals plus their Python spellings
_LITERALS: dict[str, Any] = {
    "true": True,
    "false": False,
    "nil": None,
    "True": True,
    "False": False,
    "None": None,
    **{f"SPAN_KIND_{kind.name}": kind for kind in SpanKind},
    **{f"STATUS_CODE_{code.name}": code for code in StatusCode},
}

# Fields readable on each context layer
_LAYER_FIELDS: dict[str, frozenset[str]] = {
    "resource": frozenset({"attributes", "dropped_attributes_count"}),
    "scope": frozenset({"name", "version", "attributes", "dropped_attributes_count"}),
    "span": frozenset(
        {
            "name",
            "kind",
            "attributes",
            "trace_id",
            "span_id",
            "parent_span_id",
            "trace_state",
            "start_time_unix_nano",
            "end_time_unix_nano",
            "status",
            "flags",
            "dropped_attributes_count",
        }
    ),
    "status": frozenset({"code", "message"}),
    "event": frozenset({"name", "time_unix_nano", "attributes", "dropped_attributes_count"}),
}

# Root names per shape: explicit layer roots plus the innermost layer's bare fields
_LAYER_ROOTS: dict[ContextShape, dict[str, str]] = {
    ContextShape.SPAN: {
        "resource": "resource",
        "instrumentation_scope": "scope",
        "scope": "scope",
        "span": "span",
    },
    ContextShape.EVENT: {
        "resource": "resource",
        "instrumentation_scope": "scope",
        "scope": "scope",
        "span": "span",
        "event": "event",
    },
}

_INNERMOST_LAYER: dict[ContextShape, str] = {
    ContextShape.SPAN: "span",
    ContextShape.EVENT: "event",
}

# Functions whose second argument is a regular expression
_REGEX_FUNCTIONS = frozenset({"IsMatch", "isMatch"})


def _check_literal_pattern(name: str, args: list[ast.expr]) -> None:
    """Compile a literal regex argument so a bad pattern fails at configure time."""
    if len(args) < 2:
        return
    pattern = args[1]
    if isinstance(pattern, ast.Constant) and isinstance(pattern.value, str):
        try:
            re.compile(pattern.value)
        except re.error as e:
            raise ConditionSyntaxError(f"Invalid regex in {name}(): {e}") from e


class _LayerView:
    """Read-only view of one context layer, addressed by field name."""

    __slots__ = ("fields", "layer")

    def __init__(self, layer: str, fields: Mapping[str, Any]) -> None:
        self.layer = layer
        self.fields = fields

    def __repr__(self) -> str:
        return f"<{self.layer}>"


def _attributes_view(attributes: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(attributes)


def _build_layers(context: ConditionContext) -> dict[str, _LayerView]:
    resource, scope, span, event = context.resource, context.scope, context.span, context.event
    layers = {
        "resource": _LayerView(
            "resource",
            {
                "attributes": _attributes_view(resource.attributes),
                "dropped_attributes_count": resource.dropped_attributes_count,
            },
        ),
        "scope": _LayerView(
            "scope",
            {
                "name": scope.name,
                "version": scope.version,
                "attributes": _attributes_view(scope.attributes),
                "dropped_attributes_count": scope.dropped_attributes_count,
            },
        ),
        "span": _LayerView(
            "span",
            {
                "name": span.name,
                "kind": span.kind,
                "attributes": _attributes_view(span.attributes),
                "trace_id": span.trace_id,
                "span_id": span.span_id,
                "parent_span_id": span.parent_span_id,
                "trace_state": span.trace_state,
                "start_time_unix_nano": span.start_time_unix_nano,
                "end_time_unix_nano": span.end_time_unix_nano,
                "status": _LayerView("status", {"code": span.status.code, "message": span.status.message}),
                "flags": span.flags,
                "dropped_attributes_count": span.dropped_attributes_count,
            },
        ),
    }
    if event is not None:
        layers["event"] = _LayerView(
            "event",
            {
                "name": event.name,
                "time_unix_nano": event.time_unix_nano,
                "attributes": _attributes_view(event.attributes),
                "dropped_attributes_count": event.dropped_attributes_count,
            },
        )
    return layers


class _ConditionValidator(ast.NodeVisitor):
    """AST visitor that validates a condition for one context shape.

    Collects every problem instead of stopping at the first one.
    """

    def __init__(self, shape: ContextShape, functions: Mapping[str, Callable[..., Any]]) -> None:
        self.errors: list[str] = []
        self._shape = shape
        self._roots = _LAYER_ROOTS[shape]
        self._bare_fields = _LAYER_FIELDS[_INNERMOST_LAYER[shape]]
        self._functions = functions

    def layer_of(self, node: ast.expr) -> str | None:
        """Return the layer a node denotes, or None if it is not a layer."""
        if isinstance(node, ast.Name):
            if node.id in self._roots:
                return self._roots[node.id]
            if node.id == "status" and "status" in self._bare_fields:
                return "status"
            return None
        if isinstance(node, ast.Attribute) and node.attr == "status":
            if self.layer_of(node.value) == "span":
                return "status"
        return None

    def visit_Name(self, node: ast.Name) -> None:
        if node.id in _LITERALS or node.id in self._roots or node.id in self._bare_fields:
            return
        if node.id in self._functions:
            self.errors.append(f"Function {node.id!r} must be called")
            return
        self.errors.append(f"Unknown path {node.id!r} in {self._shape} context")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        layer = self.layer_of(node.value)
        if layer is None:
            self.errors.append(f"Attribute access is only allowed on context paths; got '.{node.attr}'")
        elif node.attr not in _LAYER_FIELDS[layer]:
            self.errors.append(f"Unknown field {node.attr!r} on {layer}")
        self.generic_visit(node)

    def visit_Subscript(self, node: ast.Subscript) -> None:
        if isinstance(node.slice, ast.Slice):
            self.errors.append("Slice syntax (e.g., [1:3]) is forbidden")
            return
        if self.layer_of(node.value) is not None:
            self.errors.append("Context layers cannot be indexed; use .attributes[...]")
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        if not isinstance(node.func, ast.Name):
            self.errors.append(f"Forbidden function call: {ast.dump(node.func)}")
            self.generic_visit(node)
            return
        name = node.func.id
        if name not in self._functions:
            self.errors.append(f"Unknown function {name!r}")
        elif node.keywords:
            self.errors.append(f"{name}() does not accept keyword arguments")
        else:
            try:
                inspect.signature(self._functions[name]).bind(*node.args)
            except TypeError as e:
                raise ConditionSyntaxError(f"Invalid call to {name}(): {e}") from e
            except ValueError:
                pass  # builtins without an introspectable signature
            if name in _REGEX_FUNCTIONS:
                _check_literal_pattern(name, node.args)
        for arg in node.args:
            self.visit(arg)

    def visit_Compare(self, node: ast.Compare) -> None:
        all_operands = [node.left, *node.comparators]
        for i, op in enumerate(node.ops):
            if type(op) not in _COMPARISON_OPS:
                self.errors.append(f"Forbidden comparison operator: {type(op).__name__}")
            elif isinstance(op, ast.Is | ast.IsNot):
                if not (_is_nil(all_operands[i]) or _is_nil(all_operands[i + 1])):
                    self.errors.append("'is' and 'is not' operators are only allowed for nil checks")
        self.generic_visit(node)

    def visit_BinOp(self, node: ast.BinOp) -> None:
        if type(node.op) not in _BINARY_OPS:
            self.errors.append(f"Forbidden binary operator: {type(node.op).__name__}")
        self.generic_visit(node)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> None:
        if type(node.op) not in _UNARY_OPS:
            self.errors.append(f"Forbidden unary operator: {type(node.op).__name__}")
        self.generic_visit(node)

    def visit_Constant(self, node: ast.Constant) -> None:
        if node.value is None or isinstance(node.value, str | int | float | bool):
            return
        self.errors.append(f"Forbidden constant type: {type(node.value).__name__}")

    def visit_Dict(self, node: ast.Dict) -> None:
        self.errors.append("Map literals are forbidden")

    def visit_Set(self, node: ast.Set) -> None:
        self.errors.append("Set literals are forbidden")

    def visit_IfExp(self, node: ast.IfExp) -> None:
        self.errors.append("Conditional expressions are forbidden")

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self.errors.append("Lambda expressions are forbidden")

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self.errors.append("Comprehensions are forbidden")

    visit_SetComp = visit_ListComp
    visit_DictComp = visit_ListComp
    visit_GeneratorExp = visit_ListComp

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self.errors.append("Assignment expressions (:=) are forbidden")

    def visit_JoinedStr(self, node: ast.JoinedStr) -> None:
        self.errors.append("F-strings are forbidden")

    def visit_Starred(self, node: ast.Starred) -> None:
        self.errors.append("Starred expressions (*) are forbidden")

    def visit_Await(self, node: ast.Await) -> None:
        self.errors.append("Await expressions are forbidden")


def _is_nil(node: ast.expr) -> bool:
    if isinstance(node, ast.Constant) and node.value is None:
        return True
    return isinstance(node, ast.Name) and node.id in ("nil", "None")


class _ConditionEvaluator(ast.NodeVisitor):
    """AST visitor that evaluates a validated condition."""

    def __init__(
        self,
        shape: ContextShape,
        layers: dict[str, _LayerView],
        functions: Mapping[str, Callable[..., Any]],
    ) -> None:
        self._roots = _LAYER_ROOTS[shape]
        self._innermost = layers[_INNERMOST_LAYER[shape]]
        self._layers = layers
        self._functions = functions

    def visit_Expression(self, node: ast.Expression) -> Any:
        return self.visit(node.body)

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id in _LITERALS:
            return _LITERALS[node.id]
        if node.id in self._roots:
            return self._layers[self._roots[node.id]]
        return self._innermost.fields[node.id]

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        view = self.visit(node.value)
        return view.fields[node.attr]

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        value = self.visit(node.value)
        key = self.visit(node.slice)
        # nil propagates through lookups, like a missing map key
        if value is None:
            return None
        if isinstance(value, Mapping):
            try:
                return value.get(key)
            except TypeError as e:
                raise ConditionEvaluationError(f"Invalid map key {key!r}: {e}") from e
        if isinstance(value, list | tuple):
            if type(key) is not int:
                raise ConditionEvaluationError(f"List index must be an int, got {type(key).__name__}")
            try:
                return value[key]
            except IndexError as e:
                msg = f"Index {key} out of range for list of length {len(value)}"
                raise ConditionEvaluationError(msg) from e
        raise ConditionEvaluationError(f"Cannot index {type(value).__name__} with {key!r}")

    def visit_Call(self, node: ast.Call) -> Any:
        name = node.func.id  # type: ignore[attr-defined]
        args = [self.visit(arg) for arg in node.args]
        try:
            return self._functions[name](*args)
        except ConditionEvaluationError:
            raise
        except Exception as e:
            raise ConditionEvaluationError(f"{name}() failed: {e}") from e

    def visit_Compare(self, node: ast.Compare) -> Any:
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators, strict=True):
            right = self.visit(comparator)
            op_func = _COMPARISON_OPS[type(op)]
            try:
                if not op_func(left, right):
                    return False
            except TypeError as e:
                op_name = type(op).__name__
                msg = f"type error in comparison ({op_name}): cannot compare {type(left).__name__} and {type(right).__name__}"
                raise ConditionEvaluationError(msg) from e
            left = right
        return True

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        if isinstance(node.op, ast.And):
            for value in node.values:
                result = self.visit(value)
                if not result:
                    return result
            return result
        for value in node.values:
            result = self.visit(value)
            if result:
                return result
        return result

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        left = self.visit(node.left)
        right = self.visit(node.right)
        op_func = _BINARY_OPS[type(node.op)]
        try:
            return op_func(left, right)
        except ZeroDivisionError as e:
            raise ConditionEvaluationError("division by zero") from e
        except TypeError as e:
            op_name = type(node.op).__name__
            msg = f"type error in {op_name}: cannot apply to {type(left).__name__} and {type(right).__name__}"
            raise ConditionEvaluationError(msg) from e

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        try:
            return _UNARY_OPS[type(node.op)](operand)
        except TypeError as e:
            msg = f"type error in unary {type(node.op).__name__}: cannot apply to {type(operand).__name__}"
            raise ConditionEvaluationError(msg) from e

    def visit_List(self, node: ast.List) -> Any:
        return [self.visit(elt) for elt in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> Any:
        return tuple(self.visit(elt) for elt in node.elts)


class Condition:
    """A condition compiled for one context shape.

    Parses and validates at construction time, then evaluates against
    ConditionContext values. Satisfies the CompiledPredicate protocol.

    Allowed:
    - Context paths: name, attributes["k"], span.name, resource.attributes["k"],
      instrumentation_scope.name, span.status.code, ...
    - Comparisons: ==, !=, <, >, <=, >=, in, not in, is nil, is not nil
    - Boolean operators: and, or, not
    - Literals: strings, numbers, true/false/nil, list and tuple literals,
      SPAN_KIND_* and STATUS_CODE_* enum names
    - Arithmetic: +, -, *, /
    - Calls to registered condition functions (IsMatch, HasPrefix, Len...)

    Forbidden: attribute access outside context paths, keyword arguments,
    lambdas, comprehensions, map/set literals, ternaries, f-strings, walrus.

    Example:
        condition = Condition('isMatch(span.name, "GET")', ContextShape.SPAN)
        condition.evaluate(ConditionContext(resource, scope, span))  # True
    """

    def __init__(
        self,
        expression: str,
        shape: ContextShape,
        functions: Mapping[str, Callable[..., Any]] | None = None,
    ) -> None:
        """Parse and validate a condition.

        Args:
            expression: Condition text
            shape: Context shape the condition will be evaluated against
            functions: Function registry; defaults to the built-in functions
                plus any registered through the pluggy hook

        Raises:
            ConditionSyntaxError: If the text does not parse or a call has the
                wrong number of arguments
            ConditionSecurityError: If the condition uses forbidden constructs,
                unknown paths or unknown functions
        """
        if functions is None:
            from spanlog.engine.functions import default_functions

            functions = default_functions()

        self._expression = expression
        self._shape = shape
        self._functions = functions

        try:
            self._ast = ast.parse(expression.strip(), mode="eval")
        except SyntaxError as e:
            raise ConditionSyntaxError(f"Invalid syntax: {e.msg}") from e

        validator = _ConditionValidator(shape, functions)
        validator.visit(self._ast)
        if validator.errors:
            raise ConditionSecurityError("; ".join(validator.errors))

    @property
    def source(self) -> str:
        return self._expression

    @property
    def shape(self) -> ContextShape:
        return self._shape

    def evaluate(self, context: ConditionContext) -> Any:
        """Evaluate against the context.

        Raises:
            ConditionEvaluationError: If evaluation fails for this context
            ValueError: If the context does not have this condition's shape
        """
        if context.shape is not self._shape:
            raise ValueError(f"{self._shape} condition evaluated against a {context.shape} context")
        evaluator = _ConditionEvaluator(self._shape, _build_layers(context), self._functions)
        return evaluator.visit(self._ast)

    def __repr__(self) -> str:
        return f"Condition({self._expression!r}, {self._shape!s})"


def compile_conditions(
    expressions: list[str],
    shape: ContextShape,
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> tuple[Condition, ...]:
    """Compile a list of condition strings, preserving order.

    Raises:
        ConditionError: For the first condition that fails to compile; the
            message names the offending condition.
    """
    compiled = []
    for expression in expressions:
        try:
            compiled.append(Condition(expression, shape, functions))
        except ConditionError as e:
            raise type(e)(f"invalid {shape}_condition {expression!r}: {e}") from e
    return tuple(compiled)
