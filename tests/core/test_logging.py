# tests/core/test_logging.py
"""Tests for structured logging configuration."""

import json
import logging
from collections.abc import Iterator

import pytest
import structlog


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


class TestLoggingConfig:
    """Tests for logging configuration."""

    def test_get_logger_returns_logger(self) -> None:
        """get_logger returns a bound logger."""
        from spanlog.core.logging import get_logger

        logger = get_logger("test")
        assert hasattr(logger, "info")
        assert hasattr(logger, "error")
        assert hasattr(logger, "bind")

    def test_json_output_goes_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        """JSON mode writes one parseable object per line to stderr."""
        from spanlog.core.logging import configure_logging, get_logger

        configure_logging(json_output=True)
        get_logger("test").info("Connector configured", span_conditions=1)

        captured = capsys.readouterr()
        assert captured.out == ""
        line = captured.err.strip().splitlines()[-1]
        data = json.loads(line)
        assert data["event"] == "Connector configured"
        assert data["span_conditions"] == 1
        assert data["level"] == "info"
        assert "timestamp" in data
        assert "_record" not in data

    def test_console_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Console mode renders human-readable lines."""
        from spanlog.core.logging import configure_logging, get_logger

        configure_logging(json_output=False)
        get_logger("test").warning("Failed to execute log body template", event_name="exception")

        captured = capsys.readouterr()
        assert "Failed to execute log body template" in captured.err
        assert "event_name=exception" in captured.err

    def test_stdlib_logging_routed_through_structlog(self, capsys: pytest.CaptureFixture[str]) -> None:
        """stdlib loggers produce the same JSON lines."""
        from spanlog.core.logging import configure_logging

        configure_logging(json_output=True)
        logging.getLogger("spanlog.stdlib").warning("plain stdlib message")

        data = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert data["event"] == "plain stdlib message"
        assert data["level"] == "warning"

    def test_level_filters(self, capsys: pytest.CaptureFixture[str]) -> None:
        from spanlog.core.logging import configure_logging, get_logger

        configure_logging(json_output=True, level="WARNING")
        get_logger("test").info("hidden")

        assert "hidden" not in capsys.readouterr().err

    def test_noisy_loggers_clamped(self) -> None:
        from spanlog.core.logging import configure_logging

        configure_logging(level="DEBUG")
        assert logging.getLogger("opentelemetry").level == logging.WARNING
        assert logging.getLogger("jinja2").level == logging.WARNING

    def test_unknown_level_raises(self) -> None:
        from spanlog.core.logging import configure_logging

        with pytest.raises(AttributeError):
            configure_logging(level="LOUD")

    def test_explicit_stream(self) -> None:
        import io

        from spanlog.core.logging import configure_logging, get_logger

        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)
        get_logger("test").error("Failed to evaluate condition", condition="name == 1")

        data = json.loads(stream.getvalue().strip())
        assert data["condition"] == "name == 1"


class TestTransformLogContext:
    """Values bound for one transform call reach every diagnostic inside it."""

    def test_values_bound_inside_only(self, capsys: pytest.CaptureFixture[str]) -> None:
        from spanlog.core.logging import configure_logging, get_logger, transform_log_context

        configure_logging(json_output=True)
        logger = get_logger("test")
        with transform_log_context(spans_in_batch=3):
            logger.error("Failed to evaluate condition")
        logger.error("outside")

        inside, outside = (json.loads(line) for line in capsys.readouterr().err.strip().splitlines()[-2:])
        assert inside["spans_in_batch"] == 3
        assert "spans_in_batch" not in outside
