"""CLI — Server management commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

app = typer.Typer(help="Start and inspect the readiness-guard server.")
console = Console()


@app.command("start")
def start(
    host: str = typer.Option("127.0.0.1", help="Host to bind to."),
    port: int = typer.Option(8000, help="Port to listen on."),
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
    ] = None,
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload (dev only)."),
    log_level: str = typer.Option("info", help="Log level."),
) -> None:
    """Start the readiness-guard server."""
    from readiness_guard.api.server import create_app
    from readiness_guard.config import Settings, validate_security_environment
    from readiness_guard.exceptions import ConfigurationError

    try:
        settings = Settings.load(config_file=config)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc.message}")
        raise typer.Exit(1)
    settings.server.host = host
    settings.server.port = port

    problems = validate_security_environment(settings)
    if problems:
        for problem in problems:
            console.print(f"[red]Insecure configuration: {problem}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold green]Starting readiness-guard on {host}:{port}[/bold green]")

    try:
        app_instance = create_app(settings=settings)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc.message}")
        raise typer.Exit(1)

    uvicorn.run(
        app_instance,
        host=host,
        port=port,
        log_level=log_level,
        reload=reload,
    )


@app.command("status")
def status(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(8000),
) -> None:
    """Check server health."""
    import httpx

    try:
        resp = httpx.get(f"http://{host}:{port}/health", timeout=5.0)
        data = resp.json()
    except Exception as exc:
        console.print(f"[red]Server unreachable: {exc}[/red]")
        raise typer.Exit(1)

    table = Table(title="readiness-guard Status")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for k, v in data.items():
        if k == "security":
            table.add_row("security", str(v.get("status")))
            for check in v.get("checks", []):
                table.add_row(f"  {check['name']}", f"{check['status']}: {check['message']}")
        else:
            table.add_row(str(k), str(v))
    console.print(table)
