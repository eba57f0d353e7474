"""CLI commands that visit pages: ``run``, ``interact`` and ``serve``."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console

from pagepilot.exceptions import PagePilotError

console = Console()


def _load_actions(actions: list[str], actions_file: Optional[Path]) -> list[Any]:
    loaded: list[Any] = []
    if actions_file is not None:
        data = json.loads(actions_file.read_text())
        if not isinstance(data, list):
            raise typer.BadParameter("actions file must hold a JSON list", param_hint="--actions-file")
        loaded.extend(data)
    for raw in actions:
        try:
            loaded.append(json.loads(raw))
        except json.JSONDecodeError as exc:
            raise typer.BadParameter(f"not valid JSON: {raw!r}", param_hint="--action") from exc
    return loaded


async def _execute(url: str, actions: list[Any]) -> Any:
    from pagepilot.session.service import PagePilotService
    from pagepilot.settings import get_settings

    async with PagePilotService.from_settings(get_settings()) as service:
        return await service.execute(url, actions)


async def _interact(url: str, action: Any) -> Any:
    from pagepilot.session.service import PagePilotService
    from pagepilot.settings import get_settings

    async with PagePilotService.from_settings(get_settings()) as service:
        return await service.interact_once(url, action)


def run_page(
    url: str = typer.Argument(..., help="URL to visit."),
    action: list[str] = typer.Option(
        [], "--action", "-a", help='Action as JSON, e.g. \'{"type": "click", "selector": "#go"}\'. Repeatable.'
    ),
    actions_file: Optional[Path] = typer.Option(None, "--actions-file", help="JSON file with a list of actions."),
) -> None:
    """Visit a URL, run the actions in order and print the page snapshot as JSON."""
    from pagepilot.models.action import parse_actions
    from pagepilot.session.service import validate_url

    script = _load_actions(action, actions_file)
    try:
        url = validate_url(url)
        parse_actions(script)
        result = asyncio.run(_execute(url, script))
    except PagePilotError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(code=2)

    console.print_json(result.model_dump_json(by_alias=True))
    if getattr(result, "error", None):
        raise typer.Exit(code=1)


def interact(
    url: str = typer.Argument(..., help="URL to visit."),
    action: str = typer.Argument(..., help="Single action as JSON."),
) -> None:
    """Visit a URL and run exactly one action (never cached)."""
    from pagepilot.models.action import parse_action
    from pagepilot.session.service import validate_url

    (parsed,) = _load_actions([action], None)
    try:
        url = validate_url(url)
        parse_action(parsed)
        outcome = asyncio.run(_interact(url, parsed))
    except PagePilotError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(code=2)

    console.print_json(outcome.model_dump_json())
    if not outcome.success:
        raise typer.Exit(code=1)


def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from settings)."),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port (default from settings)."),
) -> None:
    """Serve the REST API with uvicorn."""
    import uvicorn

    from pagepilot.settings import get_settings

    settings = get_settings()
    uvicorn.run(
        "pagepilot.api.app:app",
        host=host or settings.api.host,
        port=port or settings.api.port,
        log_config=None,
    )


def register_visit_commands(app: typer.Typer) -> None:
    app.command("run")(run_page)
    app.command("interact")(interact)
    app.command("serve")(serve)
