# src/spanlog/cli.py
"""spanlog Command Line Interface.

Entry point for the spanlog CLI tool.
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from dynaconf.vendor.ruamel.yaml.parser import ParserError as YamlParserError
from dynaconf.vendor.ruamel.yaml.scanner import ScannerError as YamlScannerError
from pydantic import ValidationError

from spanlog import __version__
from spanlog.core.config import ConnectorConfigError, ConnectorSettings, default_settings_dict, load_settings

__all__ = [
    "app",
]

app = typer.Typer(
    name="spanlog",
    help="spanlog: turn span events into correlated log records.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"spanlog version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Diagnostic log level (DEBUG, INFO, WARNING, ERROR).",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """spanlog: turn span events into correlated log records."""
    from spanlog.core.logging import configure_logging

    try:
        configure_logging(json_output=json_logs, level=log_level)
    except AttributeError:
        typer.secho(f"Error: unknown log level: {log_level}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from None


def _format_validation_error(
    title: str,
    message: str,
    hint: str | None = None,
    details: list[str] | None = None,
) -> None:
    """Display a formatted validation error with optional hint and details."""
    from rich.console import Console
    from rich.panel import Panel
    from rich.text import Text

    console = Console(stderr=True)

    content = Text()
    content.append(message, style="white")

    if details:
        content.append("\n\n")
        for detail in details:
            content.append(f"  • {detail}\n", style="dim")

    if hint:
        content.append("\n")
        content.append("Hint: ", style="yellow bold")
        content.append(hint, style="yellow")

    panel = Panel(
        content,
        title=f"[red bold]❌ {title}[/]",
        border_style="red",
        padding=(0, 1),
    )
    console.print(panel)


def _load_settings_or_exit(settings: str) -> ConnectorSettings:
    settings_path = Path(settings).expanduser()

    try:
        return load_settings(settings_path)
    except (YamlParserError, YamlScannerError) as e:
        _format_validation_error(
            title="YAML Syntax Error",
            message=f"Failed to parse {settings_path.name}",
            details=[str(e.problem)] if hasattr(e, "problem") else None,
            hint="Check for unclosed brackets, incorrect indentation, or invalid characters.",
        )
        raise typer.Exit(1) from None
    except FileNotFoundError:
        _format_validation_error(
            title="File Not Found",
            message=f"Settings file does not exist: {settings}",
            hint="Check the path and ensure the file exists.",
        )
        raise typer.Exit(1) from None
    except ConnectorConfigError as e:
        details = None
        if isinstance(e.__cause__, ValidationError):
            details = [
                f"{'.'.join(str(x) for x in error['loc']) or '(settings)'}: {error['msg']}"
                for error in e.__cause__.errors()
            ]
        _format_validation_error(
            title="Configuration Validation Failed",
            message=f"Invalid settings in {settings_path.name}",
            details=details or [str(e)],
            hint="Check condition expressions, log_level and log_body_template fields.",
        )
        raise typer.Exit(1) from None


@app.command()
def validate(
    settings: str | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    show_defaults: bool = typer.Option(
        False,
        "--show-defaults",
        help="Print the default value of every setting and exit.",
    ),
) -> None:
    """Validate connector configuration without processing any data."""
    from spanlog.adapters.consumers import CollectingLogConsumer
    from spanlog.engine.connector import create_connector

    if show_defaults:
        # JSON is valid YAML, so the output can seed a settings file
        typer.echo(json.dumps({"spanlog": default_settings_dict()}, indent=2))
        return

    if settings is None:
        typer.secho("Error: --settings is required unless --show-defaults is given", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    config = _load_settings_or_exit(settings)

    # Compiles everything the connector needs, exactly as at startup
    try:
        create_connector(config, CollectingLogConsumer(), metrics=None)
    except ConnectorConfigError as e:
        _format_validation_error(title="Connector Configuration Error", message=str(e))
        raise typer.Exit(1) from None

    typer.echo("✅ Connector configuration valid!")
    typer.echo(f"  Span conditions: {len(config.span_conditions)}")
    typer.echo(f"  Event conditions: {len(config.event_conditions)}")
    typer.echo(f"  Log level: {config.log_level}")
    typer.echo(f"  Body template: {config.log_body_template or '(default)'}")
    typer.echo(f"  Span attributes: {'included' if config.include_span_attributes else 'excluded'}")
    typer.echo(f"  Event attributes: {'included' if config.include_event_attributes else 'excluded'}")


@app.command()
def transform(
    settings: str = typer.Option(
        ...,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    input_path: Path = typer.Option(
        ...,
        "--input",
        "-i",
        help="OTLP/JSON trace file (ExportTraceServiceRequest).",
    ),
    output_path: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write OTLP/JSON logs here instead of stdout.",
    ),
) -> None:
    """Run one transform over an OTLP/JSON trace file and print the produced logs."""
    from spanlog.adapters.consumers import CollectingLogConsumer
    from spanlog.codec.otlp_json import OTLPJsonError, decode_trace_batch, encode_log_batch
    from spanlog.engine.connector import create_connector

    config = _load_settings_or_exit(settings)

    try:
        payload = json.loads(input_path.expanduser().read_text(encoding="utf-8"))
    except FileNotFoundError:
        _format_validation_error(
            title="File Not Found",
            message=f"Input file does not exist: {input_path}",
        )
        raise typer.Exit(1) from None
    except json.JSONDecodeError as e:
        _format_validation_error(
            title="Invalid JSON",
            message=f"Failed to parse {input_path.name}",
            details=[str(e)],
        )
        raise typer.Exit(1) from None

    try:
        batch = decode_trace_batch(payload)
    except OTLPJsonError as e:
        _format_validation_error(
            title="Invalid OTLP/JSON",
            message=f"{input_path.name} is not an OTLP/JSON trace payload",
            details=[str(e)],
            hint="Expected an object with a resourceSpans list.",
        )
        raise typer.Exit(1) from None

    consumer = CollectingLogConsumer()
    try:
        connector = create_connector(config, consumer)
    except ConnectorConfigError as e:
        _format_validation_error(title="Connector Configuration Error", message=str(e))
        raise typer.Exit(1) from None

    connector.start()
    try:
        connector.transform(batch)
    finally:
        connector.shutdown()

    # No matching event: nothing was forwarded
    if not consumer.batches:
        return

    lines = [json.dumps(encode_log_batch(b), separators=(",", ":"), ensure_ascii=False) for b in consumer.batches]
    if output_path is None:
        for line in lines:
            typer.echo(line)
        return

    output_path.expanduser().write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    typer.echo(f"Wrote {consumer.log_record_count()} log records to {output_path}")
