# tests/cli/test_cli.py
"""Tests for the spanlog CLI."""

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
import structlog
from typer.testing import CliRunner

from spanlog.cli import app

runner = CliRunner()

SCENARIO_SETTINGS = """\
spanlog:
  span_conditions:
    - 'isMatch(span.name, "GET")'
  event_conditions:
    - 'isMatch(name, "exception")'
  log_level: Error
  log_body_template: 'Error in {{.SpanName}}: {{.EventName}}'
"""


def _traces(event_name: str = "exception") -> dict[str, Any]:
    return {
        "resourceSpans": [
            {
                "resource": {"attributes": [{"key": "service.name", "value": {"stringValue": "checkout"}}]},
                "scopeSpans": [
                    {
                        "scope": {"name": "io.test.http"},
                        "spans": [
                            {
                                "traceId": "5b8efff798038103d269b633813fc60c",
                                "spanId": "eee19b7ec3c1b174",
                                "name": "GET /api/cart",
                                "kind": 2,
                                "events": [
                                    {
                                        "timeUnixNano": "1544712660500000000",
                                        "name": event_name,
                                        "attributes": [
                                            {"key": "exception.type", "value": {"stringValue": "ConnectionError"}}
                                        ],
                                    }
                                ],
                            }
                        ],
                    }
                ],
            }
        ]
    }


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    # The CLI callback points the root handler at the runner's streams
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(SCENARIO_SETTINGS)
    return path


@pytest.fixture
def traces_file(tmp_path: Path) -> Path:
    path = tmp_path / "traces.json"
    path.write_text(json.dumps(_traces()))
    return path


class TestCLIBasics:
    """Version, help and global options."""

    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "spanlog version" in result.stdout

    def test_help_lists_commands(self) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "validate" in result.stdout
        assert "transform" in result.stdout

    def test_unknown_log_level(self, settings_file: Path) -> None:
        result = runner.invoke(app, ["--log-level", "LOUD", "validate", "--settings", str(settings_file)])
        assert result.exit_code == 1
        assert "unknown log level" in result.output


class TestValidateCommand:
    """validate compiles everything and reports problems readably."""

    def test_valid_settings(self, settings_file: Path) -> None:
        result = runner.invoke(app, ["--log-level", "ERROR", "validate", "--settings", str(settings_file)])
        assert result.exit_code == 0
        assert "Connector configuration valid!" in result.stdout
        assert "Span conditions: 1" in result.stdout
        assert "Log level: Error" in result.stdout

    def test_disallowed_template_field(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("span_conditions: ['true']\nlog_body_template: '{{.BadField}}'\n")

        result = runner.invoke(app, ["validate", "--settings", str(path)])

        assert result.exit_code == 1
        assert "Configuration Validation Failed" in result.output

    def test_show_defaults(self) -> None:
        result = runner.invoke(app, ["--log-level", "ERROR", "validate", "--show-defaults"])

        assert result.exit_code == 0
        defaults = json.loads(result.stdout)["spanlog"]
        assert defaults["span_conditions"] == []
        assert defaults["log_level"] == "Info"
        assert defaults["log_body_template"] == "Span Event: {{.EventName}}"
        assert defaults["counter_emission"] == "empty_batch_only"

    def test_settings_required_without_show_defaults(self) -> None:
        result = runner.invoke(app, ["validate"])
        assert result.exit_code == 1
        assert "--settings is required" in result.output

    def test_missing_settings_file(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["validate", "--settings", str(tmp_path / "absent.yaml")])
        assert result.exit_code == 1
        assert "File Not Found" in result.output


class TestTransformCommand:
    """transform decodes OTLP/JSON traces and prints OTLP/JSON logs."""

    def test_logs_written_to_stdout(self, settings_file: Path, traces_file: Path) -> None:
        result = runner.invoke(
            app,
            ["--log-level", "ERROR", "transform", "--settings", str(settings_file), "--input", str(traces_file)],
        )

        assert result.exit_code == 0
        (line,) = result.stdout.strip().splitlines()
        record = json.loads(line)["resourceLogs"][0]["scopeLogs"][0]["logRecords"][0]
        assert record["body"] == {"stringValue": "Error in GET /api/cart: exception"}
        assert record["severityText"] == "Error"
        assert record["severityNumber"] == 17
        assert record["traceId"] == "5b8efff798038103d269b633813fc60c"

    def test_nothing_matched_prints_nothing(self, settings_file: Path, tmp_path: Path) -> None:
        traces = tmp_path / "traces.json"
        traces.write_text(json.dumps(_traces(event_name="retry")))

        result = runner.invoke(
            app,
            ["--log-level", "ERROR", "transform", "--settings", str(settings_file), "--input", str(traces)],
        )

        assert result.exit_code == 0
        assert result.stdout.strip() == ""

    def test_output_file(self, settings_file: Path, traces_file: Path, tmp_path: Path) -> None:
        output = tmp_path / "logs.json"

        result = runner.invoke(
            app,
            [
                "--log-level",
                "ERROR",
                "transform",
                "--settings",
                str(settings_file),
                "--input",
                str(traces_file),
                "--output",
                str(output),
            ],
        )

        assert result.exit_code == 0
        assert "Wrote 1 log records" in result.stdout
        (line,) = output.read_text().splitlines()
        assert json.loads(line)["resourceLogs"][0]["resource"]["attributes"][0]["key"] == "service.name"

    def test_invalid_json_input(self, settings_file: Path, tmp_path: Path) -> None:
        traces = tmp_path / "traces.json"
        traces.write_text("{not json")

        result = runner.invoke(app, ["transform", "--settings", str(settings_file), "--input", str(traces)])

        assert result.exit_code == 1
        assert "Invalid JSON" in result.output

    def test_not_otlp_payload(self, settings_file: Path, tmp_path: Path) -> None:
        traces = tmp_path / "traces.json"
        traces.write_text(json.dumps({"resourceSpans": {}}))

        result = runner.invoke(app, ["transform", "--settings", str(settings_file), "--input", str(traces)])

        assert result.exit_code == 1
        assert "Invalid OTLP/JSON" in result.output
