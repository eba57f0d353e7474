"""CLI commands for inspecting and validating PagePilot settings."""

from __future__ import annotations

import json

import typer
from rich.console import Console

settings_app = typer.Typer(help="Inspect and validate PagePilot configuration.")
console = Console()

_SECRET_FIELDS = {("proxy", "password"), ("captcha", "solver_api_key")}


@settings_app.command("show")
def show_settings() -> None:
    """Display the currently resolved settings (secrets masked)."""
    from pagepilot.settings import get_settings

    data = get_settings().model_dump(mode="json")
    for section, field in _SECRET_FIELDS:
        if data.get(section, {}).get(field):
            data[section][field] = "***"
    console.print_json(json.dumps(data, indent=2, default=str))


@settings_app.command("validate")
def validate_settings() -> None:
    """Validate settings and report any issues."""
    from pagepilot.settings import get_settings

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[red]✗[/red] Settings validation failed: {e}")
        raise typer.Exit(code=1)

    console.print("[green]✓[/green] Settings are valid.")
    console.print(f"  Environment: {settings.env}")
    console.print(f"  Profile DB: {settings.profiles.db_url}")
    console.print(f"  Proxy: {'enabled' if settings.proxy.upstream_url() else 'disabled'}")
    if settings.captcha.enabled and not settings.captcha.solver_api_key:
        console.print("[yellow]⚠[/yellow] CAPTCHA solving is enabled but no solver API key is set.")
