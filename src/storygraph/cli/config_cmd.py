"""storygraph config command — show/set configuration."""

from __future__ import annotations

import typer
from rich.console import Console

from storygraph.cli.output import error, output_json, output_text
from storygraph.core.config import FILE_KEYS, _load_config_file, get_config, save_config

config_app = typer.Typer()

_console = Console(stderr=True)


@config_app.command("show")
def config_show() -> None:
    """Show current configuration."""
    config = get_config()
    output_json({
        "access_token": "***" if config.access_token else "(not set)",
        "gcp_project": config.gcp_project,
        "gcp_location": config.gcp_location,
        "bucket": config.bucket,
        "inference_model": config.inference_model,
        "language_code": config.language_code,
        "media_root": config.media_root or "(not set)",
        "db_path": str(config.db_path),
        "poll_interval_sec": config.poll_interval_sec,
        "correlation_window": config.correlation_window,
        "correlation_stride": config.correlation_stride,
        "scan_seconds": config.scan_seconds,
        "fallback_timebase": config.fallback_timebase,
        "sequence_name": config.sequence_name,
    })


@config_app.command("path")
def config_path() -> None:
    """Show path to the database file."""
    config = get_config()
    output_text(str(config.db_path))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help=f"One of: {', '.join(FILE_KEYS)}"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Persist one setting to the config file."""
    if key not in FILE_KEYS:
        error(f"Unknown config key: {key}. Use one of: {', '.join(FILE_KEYS)}")
        raise typer.Exit(1)

    data = _load_config_file()
    data[key] = value.strip()
    path = save_config(data)
    shown = "***" if key == "access_token" else data[key]
    _console.print(f"  [green]✓[/green] {key} = {shown}")
    _console.print(f"  [green]✓[/green] Config saved to {path}")
