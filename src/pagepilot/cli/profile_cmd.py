"""CLI commands for inspecting stored per-host profiles."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

profile_app = typer.Typer(help="Inspect stored browser profiles.")
console = Console()


@profile_app.command("show")
def show_profile(
    host: str = typer.Argument(..., help="Hostname (or URL) whose profile to show."),
    show_values: bool = typer.Option(False, "--values", help="Print cookie and storage values."),
) -> None:
    """Display the stored profile for a host without touching its timestamps."""
    from pagepilot.store import build_profile_store
    from pagepilot.store.profile_store import host_key_for

    host_key = host_key_for(host) if "://" in host else host.lower()
    profile = build_profile_store().get(host_key)
    if profile is None:
        console.print(f"[yellow]No profile stored for {host_key}.[/yellow]")
        raise typer.Exit(code=1)

    console.print(f"[bold]{profile.host_key}[/bold]")
    console.print(f"  Created:   {profile.created_at.isoformat()}")
    console.print(f"  Last used: {profile.last_used_at.isoformat()}")
    console.print(f"  User agent: {profile.user_agent}")

    table = Table(title="Cookies")
    table.add_column("Name")
    table.add_column("Domain")
    table.add_column("Value")
    for cookie in profile.cookies:
        table.add_row(cookie.name, cookie.domain or "", cookie.value if show_values else "…")
    console.print(table)

    for label, items in (("localStorage", profile.local_storage), ("sessionStorage", profile.session_storage)):
        console.print(f"  {label}: {len(items)} key(s)")
        if show_values:
            for key, value in items.items():
                console.print(f"    {key} = {value}")
