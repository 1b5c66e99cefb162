# src/spanlog/core/config.py
"""Connector configuration.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.

Everything that can be checked before the first batch arrives is checked
here: conditions compile for their context shape, the log body template
passes validation, and the log level is one of the six known levels.
"""

import os
import re
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator, model_validator

from spanlog.contracts.enums import ContextShape, CounterEmission, LogLevel
from spanlog.engine.conditions import ConditionError, compile_conditions
from spanlog.engine.templates import DEFAULT_LOG_BODY_TEMPLATE, TemplateValidationError, validate_template

ENV_PREFIX = "SPANLOG"

# Optional top-level section name in settings files
_SECTION = "spanlog"


class ConnectorConfigError(Exception):
    """Raised when connector configuration is invalid.

    The connector refuses to start; no batch is processed.
    """


def _functions_from(info: ValidationInfo) -> Mapping[str, Callable[..., Any]] | None:
    # Plugin-contributed functions arrive through the validation context
    if info.context is None:
        return None
    functions: Mapping[str, Callable[..., Any]] | None = info.context.get("functions")
    return functions


class ConnectorSettings(BaseModel):
    """Settings for the span-events-to-logs connector.

    Example YAML:
        spanlog:
          span_conditions:
            - 'isMatch(span.name, "GET")'
          event_conditions:
            - 'name == "exception"'
          include_span_attributes: true
          include_event_attributes: true
          log_level: Error
          log_body_template: "Error in {{.SpanName}}: {{.EventName}}"
    """

    model_config = {"frozen": True, "extra": "forbid"}

    span_conditions: tuple[str, ...] = Field(
        default=(),
        description="Span conditions; a span is processed if any matches. Empty matches every span.",
    )
    event_conditions: tuple[str, ...] = Field(
        default=(),
        description="Event conditions; an event of a matching span is logged if any matches. Empty matches every event.",
    )
    include_span_attributes: bool = Field(
        default=True,
        description="Copy span attributes into the log record as span.<key>",
    )
    include_event_attributes: bool = Field(
        default=True,
        description="Copy event attributes into the log record as event.<key>",
    )
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Severity text of produced records: Trace, Debug, Info, Warn, Error or Fatal",
    )
    log_body_template: str | None = Field(
        default=DEFAULT_LOG_BODY_TEMPLATE,
        description="Template for the log body; empty or null uses 'Span Event: <event name>'",
    )
    counter_emission: CounterEmission = Field(
        default=CounterEmission.EMPTY_BATCH_ONLY,
        description="When per-call counters are recorded: empty_batch_only or always",
    )

    @field_validator("span_conditions")
    @classmethod
    def validate_span_conditions(cls, v: tuple[str, ...], info: ValidationInfo) -> tuple[str, ...]:
        try:
            compile_conditions(list(v), ContextShape.SPAN, _functions_from(info))
        except ConditionError as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("event_conditions")
    @classmethod
    def validate_event_conditions(cls, v: tuple[str, ...], info: ValidationInfo) -> tuple[str, ...]:
        try:
            compile_conditions(list(v), ContextShape.EVENT, _functions_from(info))
        except ConditionError as e:
            raise ValueError(str(e)) from e
        return v

    @field_validator("log_body_template")
    @classmethod
    def validate_log_body_template(cls, v: str | None) -> str | None:
        if not v:
            return None
        try:
            validate_template(v)
        except TemplateValidationError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def validate_has_conditions(self) -> Self:
        if not self.span_conditions and not self.event_conditions:
            raise ValueError("at least one span condition or event condition must be specified")
        return self

    @classmethod
    def from_dict(
        cls,
        config: dict[str, Any],
        *,
        functions: Mapping[str, Callable[..., Any]] | None = None,
    ) -> Self:
        """Create settings from a dict with a clear error on validation failure.

        Args:
            config: Settings values (the ``spanlog`` section or a flat dict)
            functions: Condition function registry when plugins add functions

        Raises:
            ConnectorConfigError: If the configuration is invalid
        """
        if not isinstance(config, dict):
            raise ConnectorConfigError(f"Invalid connector configuration: config must be a dict, got {type(config).__name__}.")
        try:
            return cls.model_validate(config, context={"functions": functions})
        except ValidationError as e:
            raise ConnectorConfigError(f"Invalid connector configuration: {e}") from e


def default_settings_dict() -> dict[str, Any]:
    """Default values of every setting, as they appear in YAML."""
    return {
        name: list(field.default) if isinstance(field.default, tuple) else field.default
        for name, field in ConnectorSettings.model_fields.items()
    }


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _env_value(match: re.Match[str]) -> str:
    name, default = match.groups()
    return os.environ.get(name, match.group(0) if default is None else default)


def _expand_env_vars(value: Any) -> Any:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in every string of a settings tree.

    Lets conditions and templates pick up deployment values, e.g.
    ``'resource.attributes["deployment.environment"] == "${DEPLOY_ENV:-prod}"'``.
    Unset variables without a default are left as written.
    """
    if isinstance(value, str):
        return _ENV_VAR_PATTERN.sub(_env_value, value)
    if isinstance(value, dict):
        return {key: _expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    return value


def load_raw_settings(config_path: Path) -> dict[str, Any]:
    """Load the settings dict from YAML with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (SPANLOG_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Raises:
        FileNotFoundError: If the config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix=ENV_PREFIX,
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; also drop its internal settings
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}

    section = raw_config.pop(_SECTION, None)
    if isinstance(section, dict):
        # Flat keys (e.g. from SPANLOG_LOG_LEVEL) override the file's section
        raw_config = {**{k.lower(): v for k, v in section.items()}, **raw_config}

    return _expand_env_vars(raw_config)


def load_settings(
    config_path: Path,
    *,
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> ConnectorSettings:
    """Load and validate connector settings from a YAML file.

    Environment variable format: SPANLOG_LOG_LEVEL=Error.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ConnectorConfigError: If the configuration fails validation
    """
    return ConnectorSettings.from_dict(load_raw_settings(config_path), functions=functions)
