"""Unified CLI entry point for PagePilot.

Config precedence: settings.default.toml -> settings.local.toml -> env vars (PAGEPILOT_* with double underscores) -> CLI flags.
"""

from __future__ import annotations

import typer

from pagepilot.cli.profile_cmd import profile_app
from pagepilot.cli.settings_cmd import settings_app
from pagepilot.cli.visit import register_visit_commands

try:
    from importlib.metadata import version

    VERSION = version("pagepilot")
except Exception:
    VERSION = "unknown"

APP_HELP = (
    "pagepilot — automated page visits with persistent per-site identity. "
    "Config precedence: settings.default.toml -> settings.local.toml -> env vars (PAGEPILOT_* with __) -> CLI flags."
)

app = typer.Typer(add_completion=True, help=APP_HELP)

register_visit_commands(app)
app.add_typer(settings_app, name="settings")
app.add_typer(profile_app, name="profile")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level."),
) -> None:
    """Show help when no subcommand is provided."""
    if version:
        typer.echo(f"pagepilot {VERSION}")
        raise typer.Exit()
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()

    from pagepilot.settings import configure_logging, get_settings

    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level, json_lines=settings.log_json)


if __name__ == "__main__":
    app()
