"""Unit tests — Identity resolvers and the authorization dependencies."""

from __future__ import annotations

from typing import Annotated

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from readiness_guard.api.dependencies import (
    PrincipalDep,
    get_identity,
    require_organization_access,
    require_permission,
    require_roles,
)
from readiness_guard.api.identity import HeaderIdentityResolver, StaticIdentityResolver
from readiness_guard.api.middleware import build_error_handler
from readiness_guard.exceptions import GuardError
from readiness_guard.security.models import AuthenticatedPrincipal, IdentityResult

pytestmark = pytest.mark.unit


async def _broken_resolver(request: Request) -> IdentityResult:
    raise RuntimeError("identity provider unreachable")


def _make_app(resolver) -> FastAPI:
    app = FastAPI()
    app.state.identity_resolver = resolver
    app.add_exception_handler(GuardError, build_error_handler())

    @app.get("/whoami")
    async def whoami(identity: Annotated[IdentityResult, Depends(get_identity)]) -> dict:
        principal = identity.principal
        return {
            "authenticated": identity.authenticated,
            "id": principal.id if principal else None,
            "role": principal.role if principal else None,
            "org": principal.organization_id if principal else None,
            "error": identity.error,
        }

    @app.get("/me")
    async def me(principal: PrincipalDep) -> dict:
        return {"id": principal.id}

    @app.get("/analytics")
    async def analytics(
        principal: Annotated[AuthenticatedPrincipal, Depends(require_roles("analyst"))],
    ) -> dict:
        return {"role": principal.role}

    @app.get("/export")
    async def export(
        principal: Annotated[AuthenticatedPrincipal, Depends(require_permission("api:export:access"))],
    ) -> dict:
        return {"role": principal.role}

    @app.get("/organizations/{organization_id}")
    async def organization(
        organization_id: str,
        principal: Annotated[AuthenticatedPrincipal, Depends(require_organization_access)],
    ) -> dict:
        return {"organization_id": organization_id}

    return app


def _client(resolver) -> TestClient:
    return TestClient(_make_app(resolver), raise_server_exceptions=False)


class TestHeaderIdentityResolver:
    def test_anonymous_without_user_id(self) -> None:
        body = _client(HeaderIdentityResolver()).get("/whoami").json()
        assert body["authenticated"] is False
        assert body["error"] == "No valid session found"

    def test_reads_gateway_headers(self) -> None:
        body = _client(HeaderIdentityResolver()).get(
            "/whoami",
            headers={"X-User-ID": "u-7", "X-User-Role": "analyst", "X-User-Org-ID": "org-5"},
        ).json()
        assert body["authenticated"] is True
        assert (body["id"], body["role"], body["org"]) == ("u-7", "analyst", "org-5")

    def test_role_defaults_to_user(self) -> None:
        body = _client(HeaderIdentityResolver()).get("/whoami", headers={"X-User-ID": "u-7"}).json()
        assert body["role"] == "user"
        assert body["org"] is None


class TestResolverFailures:
    def test_exception_becomes_anonymous(self) -> None:
        body = _client(_broken_resolver).get("/whoami").json()
        assert body["authenticated"] is False
        assert body["error"] == "Authentication failed"

    def test_exception_yields_401(self) -> None:
        resp = _client(_broken_resolver).get("/me")
        assert resp.status_code == 401
        assert resp.json()["detail"] == {"reason": "Authentication failed"}


class TestDependencies:
    def test_principal_required(self) -> None:
        resp = _client(StaticIdentityResolver()).get("/me")
        assert resp.status_code == 401
        assert resp.json()["code"] == "authentication_required"

    def test_principal_returned(self, user_principal) -> None:
        resp = _client(StaticIdentityResolver(user_principal)).get("/me")
        assert resp.json() == {"id": "u-1"}

    def test_role_hierarchy(self, user_principal, org_admin_principal) -> None:
        assert _client(StaticIdentityResolver(user_principal)).get("/analytics").status_code == 403
        resp = _client(StaticIdentityResolver(org_admin_principal)).get("/analytics")
        assert resp.status_code == 200
        assert resp.json() == {"role": "org_admin"}

    def test_role_denial_detail(self, user_principal) -> None:
        body = _client(StaticIdentityResolver(user_principal)).get("/analytics").json()
        assert body["detail"] == {"user_role": "user", "required_roles": ["analyst"]}

    def test_permission(self, user_principal, org_admin_principal) -> None:
        denied = _client(StaticIdentityResolver(user_principal)).get("/export")
        assert denied.status_code == 403
        assert denied.json()["detail"]["required_permissions"] == ["api:export:access"]
        assert _client(StaticIdentityResolver(org_admin_principal)).get("/export").status_code == 200

    def test_organization_access(self, user_principal) -> None:
        client = _client(StaticIdentityResolver(user_principal))
        assert client.get("/organizations/org-123").status_code == 200
        resp = client.get("/organizations/org-999")
        assert resp.status_code == 403
        assert resp.json()["detail"]["requested_org_id"] == "org-999"

    def test_system_admin_reaches_any_organization(self, system_admin_principal) -> None:
        client = _client(StaticIdentityResolver(system_admin_principal))
        assert client.get("/organizations/org-999").status_code == 200
