# src/spanlog/engine/templates.py
"""Log body templates.

Bodies are rendered with a sandboxed Jinja2 environment. A template sees
exactly four values:

    EventName        the span event's name
    SpanName         the owning span's name
    EventAttributes  event attributes, every value rendered as a string
    SpanAttributes   span attributes, every value rendered as a string

Field references may be written Go-template style with a leading dot
(``{{.EventName}}``, ``{{ .SpanAttributes.route }}``); inside ``{{ }}`` and
``{% %}`` tags the leading dot of a reference is dropped before parsing.
Control flow uses Jinja2 syntax (``{% if %}``, ``{% for %}``, ``{% with %}``).

Validation happens once, when the connector is configured:
1. Parse the template (syntax errors reject the configuration)
2. Render it once against sample values to surface runtime errors early
3. Walk the whole syntax tree, nested blocks included, and reject any
   free variable outside the four allowed names

Rendering never raises: failures are logged and the body falls back to
``"Span Event: <event name>"``.
"""

from __future__ import annotations

import re
from typing import Any

import structlog
from jinja2 import Template, TemplateSyntaxError, nodes
from jinja2.sandbox import SandboxedEnvironment

from spanlog.contracts.telemetry import Attributes, Span, SpanEvent, attribute_as_string

logger = structlog.get_logger(__name__)

__all__ = [
    "ALLOWED_TEMPLATE_FIELDS",
    "DEFAULT_LOG_BODY_TEMPLATE",
    "LogBodyTemplate",
    "TemplateValidationError",
    "collect_template_references",
    "default_log_body",
    "normalize_field_references",
    "validate_template",
]

DEFAULT_LOG_BODY_TEMPLATE = "Span Event: {{.EventName}}"

ALLOWED_TEMPLATE_FIELDS: frozenset[str] = frozenset({"EventName", "SpanName", "EventAttributes", "SpanAttributes"})

# Values used for the one-off validation render
_SAMPLE_DATA: dict[str, Any] = {
    "EventName": "event",
    "SpanName": "span",
    "EventAttributes": {"key": "value"},
    "SpanAttributes": {"key": "value"},
}

_TAG_RE = re.compile(r"(\{\{|\{%)(.*?)(\}\}|%\})", re.DOTALL)
_STRING_LITERAL_RE = re.compile(r"""("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')""")
_LEADING_DOT_RE = re.compile(r"(?<![\w)\]}.])\.(?=[A-Za-z_])")

# Names Jinja2 binds implicitly inside loops, macros and call blocks
_LOOP_NAMES = frozenset({"loop"})
_MACRO_NAMES = frozenset({"caller", "varargs", "kwargs"})


class TemplateValidationError(Exception):
    """Raised when a log body template is rejected at configuration time."""


def default_log_body(event: SpanEvent) -> str:
    return f"Span Event: {event.name}"


def normalize_field_references(source: str) -> str:
    """Drop the leading dot of Go-style field references inside tags.

    String literals inside tags and all text outside tags are left alone.

    Examples:
        >>> normalize_field_references("Error in {{.SpanName}}")
        'Error in {{SpanName}}'
        >>> normalize_field_references("{{ .SpanAttributes.route }}")
        '{{ SpanAttributes.route }}'
    """

    def _fix_tag(match: re.Match[str]) -> str:
        parts = _STRING_LITERAL_RE.split(match.group(2))
        # split() with a capturing group puts literals at odd indices
        body = "".join(part if i % 2 else _LEADING_DOT_RE.sub("", part) for i, part in enumerate(parts))
        return f"{match.group(1)}{body}{match.group(3)}"

    return _TAG_RE.sub(_fix_tag, source)


def collect_template_references(tree: nodes.Node) -> frozenset[str]:
    """Collect every free variable a parsed template reads.

    Walks every node, including the bodies of if/for/with/filter blocks,
    macros and call blocks. Names bound inside the template (loop targets,
    with-targets, macro parameters and the implicit ``loop``/``caller``
    variables) are only excluded inside the scope that binds them. ``set``
    targets and macro names count as bound only for the statements that
    follow them in the same body, so a name read before its assignment, or
    assigned in a branch, is still reported.

    Args:
        tree: Root node from ``Environment.parse``

    Returns:
        Names the template expects from its render context
    """
    found: set[str] = set()
    _walk_references(tree, frozenset(), found)
    return frozenset(found)


def _target_names(target: nodes.Node) -> set[str]:
    if isinstance(target, nodes.Name):
        return {target.name}
    # tuple unpacking: {% for key, value in ... %}
    return {name.name for name in target.find_all(nodes.Name)}


def _walk_body(statements: list[nodes.Node], bound: frozenset[str], found: set[str]) -> None:
    """Walk a statement list in order, binding ``set`` targets as they appear."""
    local = set(bound)
    for statement in statements:
        if isinstance(statement, nodes.Assign):
            # the value is evaluated before the name exists
            _walk_references(statement.node, frozenset(local), found)
            local |= _target_names(statement.target)
        elif isinstance(statement, nodes.AssignBlock):
            if statement.filter is not None:
                _walk_references(statement.filter, frozenset(local), found)
            _walk_body(statement.body, frozenset(local), found)
            local |= _target_names(statement.target)
        elif isinstance(statement, nodes.Macro):
            # recursive macros may call themselves
            local.add(statement.name)
            _walk_references(statement, frozenset(local), found)
        else:
            _walk_references(statement, frozenset(local), found)


def _walk_references(node: nodes.Node, bound: frozenset[str], found: set[str]) -> None:
    """Recursively collect free variable loads.

    Args:
        node: Current AST node
        bound: Names bound in the enclosing scopes
        found: Accumulates free names (mutated)
    """
    if isinstance(node, nodes.Name):
        if node.ctx == "load" and node.name not in bound:
            found.add(node.name)
        return

    if isinstance(node, nodes.For):
        _walk_references(node.iter, bound, found)
        inner = bound | _target_names(node.target) | _LOOP_NAMES
        if node.test is not None:
            _walk_references(node.test, inner, found)
        _walk_body(node.body, inner, found)
        # else-branch runs outside the loop scope
        _walk_body(node.else_, bound, found)
        return

    if isinstance(node, nodes.With):
        for value in node.values:
            _walk_references(value, bound, found)
        inner = bound.union(*(_target_names(target) for target in node.targets))
        _walk_body(node.body, inner, found)
        return

    if isinstance(node, nodes.Macro | nodes.CallBlock):
        if isinstance(node, nodes.CallBlock):
            _walk_references(node.call, bound, found)
        for default in node.defaults:
            _walk_references(default, bound, found)
        inner = bound.union(*(_target_names(arg) for arg in node.args)) | _MACRO_NAMES
        _walk_body(node.body, inner, found)
        return

    for field in node.fields:
        value = getattr(node, field, None)
        if isinstance(value, nodes.Node):
            _walk_references(value, bound, found)
        elif isinstance(value, list):
            if value and all(isinstance(item, nodes.Stmt) for item in value):
                _walk_body(value, bound, found)
            else:
                for item in value:
                    if isinstance(item, nodes.Node):
                        _walk_references(item, bound, found)


def _create_environment() -> SandboxedEnvironment:
    return SandboxedEnvironment(
        autoescape=False,  # plain-text log bodies
        keep_trailing_newline=True,
    )


def validate_template(source: str) -> Template:
    """Validate a log body template and return it compiled.

    Args:
        source: Template text, Go-style leading dots allowed

    Returns:
        Compiled Jinja2 template ready for rendering

    Raises:
        TemplateValidationError: On syntax errors, a failing sample render,
            template inclusion, or a reference outside the allowed fields
    """
    env = _create_environment()
    normalized = normalize_field_references(source)

    try:
        tree = env.parse(normalized)
    except TemplateSyntaxError as e:
        raise TemplateValidationError(f"invalid log_body_template: {e}") from e

    inclusions = list(tree.find_all((nodes.Extends, nodes.Include, nodes.Import, nodes.FromImport)))
    if inclusions:
        kinds = sorted({type(n).__name__.lower() for n in inclusions})
        raise TemplateValidationError(f"invalid log_body_template: template inclusion is not allowed ({', '.join(kinds)})")

    template = env.from_string(normalized)
    try:
        template.render(_SAMPLE_DATA)
    except Exception as e:
        raise TemplateValidationError(f"invalid log_body_template (execution): {e}") from e

    disallowed = collect_template_references(tree) - ALLOWED_TEMPLATE_FIELDS
    if disallowed:
        fields = ", ".join(f".{name}" for name in sorted(disallowed))
        allowed = ", ".join(f".{name}" for name in sorted(ALLOWED_TEMPLATE_FIELDS))
        raise TemplateValidationError(f"invalid field in log_body_template: {fields} is not allowed (allowed: {allowed})")

    return template


def _stringify(attributes: Attributes) -> dict[str, str]:
    return {key: attribute_as_string(value) for key, value in attributes.items()}


def template_data(event: SpanEvent, span: Span) -> dict[str, Any]:
    """Build the render context for one (event, span) pair."""
    return {
        "EventName": event.name,
        "SpanName": span.name,
        "EventAttributes": _stringify(event.attributes),
        "SpanAttributes": _stringify(span.attributes),
    }


class LogBodyTemplate:
    """A validated log body template.

    The compiled template is immutable after construction and safe to share
    between concurrent transform calls.

    Example:
        template = LogBodyTemplate("Error in {{.SpanName}}: {{.EventName}}")
        template.render(event, span)  # "Error in GET /api/cart: exception"
    """

    def __init__(self, source: str) -> None:
        """Validate and compile the template.

        Raises:
            TemplateValidationError: If the template is rejected
        """
        self._source = source
        self._template = validate_template(source)

    @property
    def source(self) -> str:
        return self._source

    def render(self, event: SpanEvent, span: Span) -> str:
        """Render the body for an event; falls back to the default body on failure."""
        try:
            return self._template.render(template_data(event, span))
        except Exception as e:
            logger.error(
                "Failed to execute log body template",
                event_name=event.name,
                span_name=span.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return default_log_body(event)

    def __repr__(self) -> str:
        return f"LogBodyTemplate({self._source!r})"
