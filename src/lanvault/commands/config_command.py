"""Configuration management commands."""

from typing import Optional

import typer

from lanvault.commands.decorators import AppError, command_wrapper
from lanvault.services.config_service import get_config_service
from lanvault.utils import exit_codes
from lanvault.utils.ui.formatters import console, format_info, format_output, format_success

app = typer.Typer(help="Configuration management commands")


@app.command("show")
@command_wrapper
def show_config(
    output: str = typer.Option("table", "--output", "-o", help="table, json or yaml"),
) -> None:
    """Show the whole configuration."""
    config_svc = get_config_service()
    data = config_svc.config.model_dump()
    if output == "table":
        # Flatten one level so the table reads section.key
        data = {
            f"{section}.{key}": value
            for section, values in data.items()
            for key, value in values.items()
        }
    format_output(data, output)
    console.print(f"[dim]{config_svc.config_path}[/dim]")


@app.command("get")
@command_wrapper
def get_config(
    key: str = typer.Argument(..., help="Configuration key (e.g., sync.port)"),
) -> None:
    """Get a configuration value."""
    try:
        value = get_config_service().get(key)
    except KeyError as e:
        raise AppError(
            f"Configuration key '{key}' not found", exit_codes.ERROR_NOT_FOUND
        ) from e
    console.print(value)


@app.command("set")
@command_wrapper
def set_config(
    key: str = typer.Argument(..., help="Configuration key (e.g., sync.port)"),
    value: str = typer.Argument(..., help="Configuration value"),
) -> None:
    """Set a configuration value."""
    try:
        stored = get_config_service().set(key, value)
    except KeyError as e:
        raise AppError(
            f"Configuration key '{key}' not found", exit_codes.ERROR_NOT_FOUND
        ) from e
    except ValueError as e:
        raise AppError(str(e), exit_codes.ERROR_INVALID_ARGS) from e
    format_success(f"Configuration '{key}' set to '{stored}'")


@app.command("reset")
@command_wrapper
def reset_config(
    key: Optional[str] = typer.Argument(None, help="Configuration key to reset"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Reset configuration to defaults."""
    if not yes:
        msg = "entire configuration" if not key else f"'{key}'"
        if not typer.confirm(f"Are you sure you want to reset {msg}?"):
            format_info("Cancelled")
            raise typer.Exit(0)

    try:
        get_config_service().reset(key)
    except KeyError as e:
        raise AppError(
            f"Configuration key '{key}' not found", exit_codes.ERROR_NOT_FOUND
        ) from e

    if key:
        format_success(f"Configuration '{key}' reset to default")
    else:
        format_success("Configuration reset to defaults")
