"""CLI — CSRF token tooling.

Tokens are signed with the configured secret, so ``issue`` and ``verify``
must run against the same configuration as the server.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.console import Console

if TYPE_CHECKING:
    from readiness_guard.security.csrf import CSRFTokenService

app = typer.Typer(help="Issue and verify CSRF tokens.")
console = Console()

_ConfigOption = Annotated[Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")]


def _service(config: Path | None) -> "CSRFTokenService":
    from readiness_guard.config import Settings
    from readiness_guard.exceptions import ConfigurationError
    from readiness_guard.security.csrf import CSRFTokenService

    try:
        settings = Settings.load(config_file=config)
    except ConfigurationError as exc:
        console.print(f"[red]Configuration error:[/red] {exc.message}")
        raise typer.Exit(1)
    return CSRFTokenService(settings.csrf)


def _session(session: str | None, auth_cookie: str | None, ip: str | None, user_agent: str | None) -> str:
    from readiness_guard.security.csrf import derive_session_id

    if session:
        return session
    return derive_session_id(auth_cookie, ip, user_agent)


@app.command("issue")
def issue(
    session: str | None = typer.Option(None, "--session", help="Session id to bind the token to."),
    auth_cookie: str | None = typer.Option(None, "--auth-cookie", help="Derive the session id from this cookie."),
    ip: str | None = typer.Option(None, "--ip", help="Derive the session id from IP and user agent."),
    user_agent: str | None = typer.Option(None, "--user-agent"),
    config: _ConfigOption = None,
) -> None:
    """Print a fresh token."""
    service = _service(config)
    token = service.create_token(_session(session, auth_cookie, ip, user_agent))
    typer.echo(token)


@app.command("verify")
def verify(
    token: str = typer.Argument(help="Token to verify."),
    session: str | None = typer.Option(None, "--session", help="Session id the token should be bound to."),
    auth_cookie: str | None = typer.Option(None, "--auth-cookie"),
    ip: str | None = typer.Option(None, "--ip"),
    user_agent: str | None = typer.Option(None, "--user-agent"),
    config: _ConfigOption = None,
) -> None:
    """Validate TOKEN; exits 1 with the failure reason when invalid."""
    from readiness_guard.exceptions import CSRFValidationError

    service = _service(config)
    result = service.validate_token(_session(session, auth_cookie, ip, user_agent), token)
    try:
        result.raise_for_error()
    except CSRFValidationError as exc:
        console.print(f"[red]invalid[/red] {exc.reason}")
        raise typer.Exit(1)
    console.print("[green]valid[/green]")
