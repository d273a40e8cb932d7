"""CLI — Configuration inspection."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.syntax import Syntax

app = typer.Typer(help="Inspect the effective configuration.")
console = Console()

_REDACTED = "***"


@app.command("show")
def show(
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
    ] = None,
    reveal_secrets: bool = typer.Option(False, "--reveal-secrets", help="Print the CSRF secret."),
) -> None:
    """Dump the merged settings (files + environment) as JSON."""
    from readiness_guard.config import Settings, validate_security_environment
    from readiness_guard.exceptions import ConfigurationError

    try:
        settings = Settings.load(config_file=config)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc.message}")
        raise typer.Exit(1)
    data = settings.model_dump(mode="json")
    if not reveal_secrets:
        data["csrf"]["secret"] = _REDACTED

    console.print(Syntax(json.dumps(data, indent=2), "json"))
    for problem in validate_security_environment(settings):
        console.print(f"[yellow]warning:[/yellow] {problem}")
