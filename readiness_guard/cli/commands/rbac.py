"""CLI — Offline RBAC inspection.

Every command evaluates against the built-in catalog; no server is needed.
``check``, ``route`` and ``org`` exit with status 1 when access is denied so
they can be used in scripts.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from readiness_guard.security.catalog import ROLE_HIERARCHY, get_role_permissions, is_known_role
from readiness_guard.security.rbac import (
    can_access_organization,
    can_access_route,
    has_permission,
    permission_display_name,
    resolve_route,
    role_display_name,
)

app = typer.Typer(help="Inspect roles, permissions and route protection.")
console = Console()


def _verdict(allowed: bool, subject: str) -> None:
    if allowed:
        console.print(f"[green]allowed[/green] {subject}")
        return
    console.print(f"[red]denied[/red] {subject}")
    raise typer.Exit(1)


@app.command("roles")
def list_roles() -> None:
    """List roles by rank."""
    table = Table(title="Roles")
    table.add_column("Rank", justify="right")
    table.add_column("Role", style="cyan")
    table.add_column("Name")
    table.add_column("Permissions", justify="right")
    for role, rank in sorted(ROLE_HIERARCHY.items(), key=lambda item: item[1]):
        table.add_row(str(rank), role, role_display_name(role), str(len(get_role_permissions(role))))
    console.print(table)


@app.command("permissions")
def permissions(role: str = typer.Argument(help="Role to describe.")) -> None:
    """List every permission granted to ROLE."""
    if not is_known_role(role):
        console.print(f"[red]Unknown role: {role}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"{role_display_name(role)} permissions")
    table.add_column("Permission", style="cyan")
    table.add_column("Description")
    for perm in sorted(get_role_permissions(role)):
        table.add_row(perm, permission_display_name(perm))
    console.print(table)


@app.command("check")
def check(
    role: str = typer.Argument(help="Role to evaluate."),
    permission: str = typer.Argument(help="Permission string, e.g. survey:view:own."),
) -> None:
    """Does ROLE hold PERMISSION?"""
    _verdict(has_permission(role, permission), f"{role} → {permission}")


@app.command("route")
def route(
    role: str = typer.Argument(help="Role to evaluate."),
    path: str = typer.Argument(help="Request path, e.g. /admin/users."),
) -> None:
    """May ROLE access PATH according to the route table?"""
    decision = resolve_route(path)
    if decision.protected:
        console.print(
            f"[dim]{path} matches {decision.pattern}: any of {', '.join(sorted(decision.permissions))}[/dim]"
        )
    else:
        console.print(f"[yellow]{path} is not declared in the route table (unprotected)[/yellow]")
    _verdict(can_access_route(role, path), f"{role} → {path}")


@app.command("org")
def org(
    role: str = typer.Argument(help="Role to evaluate."),
    target_org_id: str = typer.Argument(help="Organization being accessed."),
    user_org: str | None = typer.Option(None, "--user-org", help="The caller's own organization."),
) -> None:
    """May a ROLE member of --user-org reach TARGET_ORG_ID?"""
    _verdict(
        can_access_organization(role, user_org, target_org_id),
        f"{role} ({user_org or 'no organization'}) → {target_org_id}",
    )
