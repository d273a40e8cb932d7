"""API layer — FastAPI dependency injection.

All stateful components (CSRF service, monitor, route table) are
created once in ``create_app`` and injected via FastAPI's dependency system.
"""

from __future__ import annotations

from typing import Annotated, Callable

from fastapi import Depends, Request

from readiness_guard.api.identity import resolve_identity
from readiness_guard.config import Settings
from readiness_guard.exceptions import (
    AccessDeniedError,
    AuthenticationRequiredError,
    OrganizationAccessDeniedError,
)
from readiness_guard.security.csrf import CSRFTokenService
from readiness_guard.security.models import AuthenticatedPrincipal, IdentityResult
from readiness_guard.security.monitor import SecurityMonitor
from readiness_guard.security.rbac import can_access_organization, has_permission, has_required_role
from readiness_guard.security.routes import RouteTable


def get_config(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]


def get_security_monitor(request: Request) -> SecurityMonitor:
    return request.app.state.security_monitor  # type: ignore[no-any-return]


def get_csrf_service(request: Request) -> CSRFTokenService:
    return request.app.state.csrf_service  # type: ignore[no-any-return]


def get_route_table(request: Request) -> RouteTable:
    return request.app.state.route_table  # type: ignore[no-any-return]


async def get_identity(request: Request) -> IdentityResult:
    return await resolve_identity(request)


async def require_principal(
    identity: Annotated[IdentityResult, Depends(get_identity)],
) -> AuthenticatedPrincipal:
    """Return the caller or raise 401."""
    if identity.principal is None:
        raise AuthenticationRequiredError(identity.error or "No valid session found")
    return identity.principal


def require_roles(*roles: str) -> Callable[..., AuthenticatedPrincipal]:
    """Dependency factory: the caller must rank at or above one of *roles*."""

    def dependency(
        principal: Annotated[AuthenticatedPrincipal, Depends(require_principal)],
    ) -> AuthenticatedPrincipal:
        if not has_required_role(principal.role, roles):
            raise AccessDeniedError(
                "Access denied. Insufficient role.",
                user_role=principal.role,
                required_roles=list(roles),
            )
        return principal

    return dependency


def require_permission(permission: str) -> Callable[..., AuthenticatedPrincipal]:
    """Dependency factory: the caller's role must hold *permission*."""

    def dependency(
        principal: Annotated[AuthenticatedPrincipal, Depends(require_principal)],
    ) -> AuthenticatedPrincipal:
        if not has_permission(principal.role, permission):
            raise AccessDeniedError(
                "Access denied. Missing permission.",
                user_role=principal.role,
                required_permissions=[permission],
            )
        return principal

    return dependency


async def require_organization_access(
    organization_id: str,
    principal: Annotated[AuthenticatedPrincipal, Depends(require_principal)],
) -> AuthenticatedPrincipal:
    """For routes with an ``{organization_id}`` path parameter."""
    if not can_access_organization(principal.role, principal.organization_id, organization_id):
        raise OrganizationAccessDeniedError(principal.role, organization_id)
    return principal


# Shorthand type aliases for route signatures.
ConfigDep = Annotated[Settings, Depends(get_config)]
MonitorDep = Annotated[SecurityMonitor, Depends(get_security_monitor)]
CSRFServiceDep = Annotated[CSRFTokenService, Depends(get_csrf_service)]
RouteTableDep = Annotated[RouteTable, Depends(get_route_table)]
PrincipalDep = Annotated[AuthenticatedPrincipal, Depends(require_principal)]
AdminDep = Annotated[AuthenticatedPrincipal, Depends(require_roles("org_admin", "system_admin"))]
