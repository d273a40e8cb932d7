"""Unit tests — API middleware (RequestIDMiddleware, SecurityHeadersMiddleware, error handler)."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from readiness_guard.api.middleware import (
    AccessLogMiddleware,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
    build_error_handler,
)
from readiness_guard.config import HeadersConfig
from readiness_guard.exceptions import (
    AccessDeniedError,
    AuthenticationRequiredError,
    ConfigurationError,
    CSRFValidationError,
    GuardError,
    OrganizationAccessDeniedError,
)
from readiness_guard.security.headers import build_security_headers


def _make_test_app() -> FastAPI:
    """Build a minimal FastAPI app with the generic middleware registered."""
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware, headers=build_security_headers(HeadersConfig()))
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_exception_handler(GuardError, build_error_handler())

    @app.get("/ok")
    async def ok() -> dict:
        return {"status": "ok"}

    @app.get("/error/auth")
    async def raise_auth():
        raise AuthenticationRequiredError("Session expired")

    @app.get("/error/denied")
    async def raise_denied():
        raise AccessDeniedError("Access denied.", user_role="user", required_roles=["org_admin"])

    @app.get("/error/org")
    async def raise_org():
        raise OrganizationAccessDeniedError("user", "org-999")

    @app.get("/error/csrf")
    async def raise_csrf():
        raise CSRFValidationError("expired")

    @app.get("/error/config")
    async def raise_config():
        raise ConfigurationError("bad policy")

    @app.get("/error/internal")
    async def raise_internal():
        raise GuardError("unexpected failure")

    return app


@pytest.fixture
def client() -> TestClient:
    return TestClient(_make_test_app(), raise_server_exceptions=False)


@pytest.mark.unit
class TestRequestIDMiddleware:
    def test_request_id_injected_in_response(self, client: TestClient) -> None:
        resp = client.get("/ok")
        assert resp.status_code == 200
        assert "X-Request-ID" in resp.headers

    def test_custom_request_id_echoed(self, client: TestClient) -> None:
        resp = client.get("/ok", headers={"X-Request-ID": "test-rid-123"})
        assert resp.headers["X-Request-ID"] == "test-rid-123"

    def test_request_id_in_error_body(self, client: TestClient) -> None:
        resp = client.get("/error/auth", headers={"X-Request-ID": "rid-9"})
        assert resp.json()["request_id"] == "rid-9"


@pytest.mark.unit
class TestSecurityHeadersMiddleware:
    def test_headers_on_success(self, client: TestClient) -> None:
        resp = client.get("/ok")
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert "Content-Security-Policy" in resp.headers

    def test_headers_on_errors(self, client: TestClient) -> None:
        resp = client.get("/error/denied")
        assert resp.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"


@pytest.mark.unit
class TestErrorHandler:
    @pytest.mark.parametrize(
        "path,status,code",
        [
            ("/error/auth", 401, "authentication_required"),
            ("/error/denied", 403, "access_denied"),
            ("/error/org", 403, "access_denied"),
            ("/error/csrf", 403, "csrf_failed"),
            ("/error/config", 500, "configuration_error"),
            ("/error/internal", 500, "internal_error"),
        ],
    )
    def test_status_and_code(self, client: TestClient, path: str, status: int, code: str) -> None:
        resp = client.get(path)
        assert resp.status_code == status
        assert resp.json()["code"] == code

    def test_auth_detail(self, client: TestClient) -> None:
        body = client.get("/error/auth").json()
        assert body["error"] == "Authentication required"
        assert body["detail"] == {"reason": "Session expired"}

    def test_denied_detail(self, client: TestClient) -> None:
        body = client.get("/error/denied").json()
        assert body["detail"] == {"user_role": "user", "required_roles": ["org_admin"]}

    def test_org_detail(self, client: TestClient) -> None:
        body = client.get("/error/org").json()
        assert body["error"] == "Access denied. You can only access your own organization."
        assert body["detail"]["requested_org_id"] == "org-999"

    def test_internal_has_no_detail(self, client: TestClient) -> None:
        body = client.get("/error/internal").json()
        assert body["detail"] is None
