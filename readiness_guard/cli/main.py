"""readiness-guard CLI — Entry point.

Usage:
    readiness-guard server start
    readiness-guard server status
    readiness-guard rbac permissions <role>
    readiness-guard rbac check <role> <permission>
    readiness-guard rbac route <role> <path>
    readiness-guard rbac org <role> <target_org_id> --user-org <org_id>
    readiness-guard csrf issue --session <id>
    readiness-guard csrf verify <token> --session <id>
    readiness-guard config show
"""

from __future__ import annotations

import typer
from rich.console import Console

from readiness_guard.cli.commands import config, csrf, rbac, server

app = typer.Typer(
    name="readiness-guard",
    help="readiness-guard — Access control and request defense for the AI readiness survey app.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

console = Console()

app.add_typer(server.app, name="server")
app.add_typer(rbac.app, name="rbac")
app.add_typer(csrf.app, name="csrf")
app.add_typer(config.app, name="config")


@app.callback()
def main_callback() -> None:
    pass


if __name__ == "__main__":
    app()
