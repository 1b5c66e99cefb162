# tests/core/test_config.py
"""Tests for connector configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from spanlog.contracts import CounterEmission, LogLevel
from spanlog.core.config import (
    ConnectorConfigError,
    ConnectorSettings,
    _expand_env_vars,
    default_settings_dict,
    load_raw_settings,
    load_settings,
)
from spanlog.engine.templates import DEFAULT_LOG_BODY_TEMPLATE


class TestConnectorSettings:
    def test_defaults(self) -> None:
        settings = ConnectorSettings(span_conditions=("true",))
        assert settings.event_conditions == ()
        assert settings.include_span_attributes is True
        assert settings.include_event_attributes is True
        assert settings.log_level is LogLevel.INFO
        assert settings.log_body_template == DEFAULT_LOG_BODY_TEMPLATE
        assert settings.counter_emission is CounterEmission.EMPTY_BATCH_ONLY

    def test_lists_become_tuples(self) -> None:
        settings = ConnectorSettings.from_dict({"span_conditions": ['name == "a"', 'name == "b"']})
        assert settings.span_conditions == ('name == "a"', 'name == "b"')

    def test_frozen(self) -> None:
        settings = ConnectorSettings(span_conditions=("true",))
        with pytest.raises(ValidationError):
            settings.log_level = LogLevel.ERROR  # type: ignore[misc]

    def test_at_least_one_condition_required(self) -> None:
        with pytest.raises(ConnectorConfigError, match="at least one span condition or event condition"):
            ConnectorSettings.from_dict({})

    @pytest.mark.parametrize("level", ["Trace", "Debug", "Info", "Warn", "Error", "Fatal"])
    def test_valid_log_levels(self, level: str) -> None:
        settings = ConnectorSettings.from_dict({"span_conditions": ["true"], "log_level": level})
        assert str(settings.log_level) == level

    @pytest.mark.parametrize("level", ["Verbose", "error", "WARNING", ""])
    def test_invalid_log_level_rejected(self, level: str) -> None:
        with pytest.raises(ConnectorConfigError, match="log_level"):
            ConnectorSettings.from_dict({"span_conditions": ["true"], "log_level": level})

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ConnectorConfigError, match="span_condition"):
            ConnectorSettings.from_dict({"span_condition": ["true"]})

    def test_invalid_span_condition_rejected(self) -> None:
        with pytest.raises(ConnectorConfigError, match="invalid span_condition 'nope\\(\\)'"):
            ConnectorSettings.from_dict({"span_conditions": ["nope()"]})

    def test_unparsable_regex_rejected(self) -> None:
        with pytest.raises(ConnectorConfigError, match="Invalid regex in isMatch"):
            ConnectorSettings.from_dict({"event_conditions": ['isMatch(name, "[")']})

    def test_event_condition_compiled_for_event_shape(self) -> None:
        # span shape has no event root
        ConnectorSettings.from_dict({"event_conditions": ['event.name == "x"']})
        with pytest.raises(ConnectorConfigError, match="invalid span_condition"):
            ConnectorSettings.from_dict({"span_conditions": ['event.name == "x"']})

    def test_invalid_template_rejected(self) -> None:
        with pytest.raises(ConnectorConfigError, match="invalid field in log_body_template"):
            ConnectorSettings.from_dict({"span_conditions": ["true"], "log_body_template": "{{.BadField}}"})

    @pytest.mark.parametrize("template", ["", None])
    def test_empty_template_means_default_body(self, template: str | None) -> None:
        settings = ConnectorSettings.from_dict({"span_conditions": ["true"], "log_body_template": template})
        assert settings.log_body_template is None

    def test_non_dict_rejected(self) -> None:
        with pytest.raises(ConnectorConfigError, match="config must be a dict"):
            ConnectorSettings.from_dict(["true"])  # type: ignore[arg-type]

    def test_functions_from_validation_context(self) -> None:
        functions = {"IsHealthCheck": lambda name: True}
        settings = ConnectorSettings.from_dict({"span_conditions": ["IsHealthCheck(name)"]}, functions=functions)
        assert settings.span_conditions == ("IsHealthCheck(name)",)

    def test_default_settings_dict(self) -> None:
        assert default_settings_dict() == {
            "span_conditions": [],
            "event_conditions": [],
            "include_span_attributes": True,
            "include_event_attributes": True,
            "log_level": LogLevel.INFO,
            "log_body_template": DEFAULT_LOG_BODY_TEMPLATE,
            "counter_emission": CounterEmission.EMPTY_BATCH_ONLY,
        }


class TestExpandEnvVars:
    def test_set_variable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SPANLOG_TEST_ROUTE", "/cart")
        assert _expand_env_vars({"c": ['name == "${SPANLOG_TEST_ROUTE}"']}) == {"c": ['name == "/cart"']}

    def test_default_used_when_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SPANLOG_TEST_UNSET", raising=False)
        assert _expand_env_vars({"level": "${SPANLOG_TEST_UNSET:-Warn}"}) == {"level": "Warn"}

    def test_unset_without_default_left_as_written(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("SPANLOG_TEST_UNSET", raising=False)
        assert _expand_env_vars({"x": "${SPANLOG_TEST_UNSET}"}) == {"x": "${SPANLOG_TEST_UNSET}"}

    def test_non_strings_untouched(self) -> None:
        assert _expand_env_vars({"a": True, "b": {"c": 1}}) == {"a": True, "b": {"c": 1}}


class TestLoadSettings:
    def test_flat_file(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(
            "span_conditions:\n"
            "  - 'isMatch(span.name, \"GET\")'\n"
            "log_level: Error\n"
            "include_event_attributes: false\n"
        )
        settings = load_settings(path)
        assert settings.span_conditions == ('isMatch(span.name, "GET")',)
        assert settings.log_level is LogLevel.ERROR
        assert settings.include_event_attributes is False

    def test_section_file(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(
            "spanlog:\n"
            "  event_conditions:\n"
            "    - 'name == \"exception\"'\n"
            "  log_body_template: 'Error in {{.SpanName}}: {{.EventName}}'\n"
        )
        settings = load_settings(path)
        assert settings.event_conditions == ('name == "exception"',)
        assert settings.log_body_template == "Error in {{.SpanName}}: {{.EventName}}"

    def test_environment_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("spanlog:\n  span_conditions: ['true']\n  log_level: Info\n")
        monkeypatch.setenv("SPANLOG_LOG_LEVEL", "Fatal")
        assert load_settings(path).log_level is LogLevel.FATAL

    def test_env_var_expansion_in_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("span_conditions:\n  - 'name == \"${SPANLOG_TEST_SPAN:-GET /}\"'\n")
        monkeypatch.delenv("SPANLOG_TEST_SPAN", raising=False)
        assert load_settings(path).span_conditions == ('name == "GET /"',)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_raw_settings(tmp_path / "absent.yaml")

    def test_invalid_file_raises_config_error(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("span_conditions: ['true']\nlog_level: Loud\n")
        with pytest.raises(ConnectorConfigError, match="log_level"):
            load_settings(path)
