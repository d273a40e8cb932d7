"""Shared pytest fixtures for the readiness-guard test suite."""

from __future__ import annotations

from typing import Callable

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from readiness_guard.api.identity import StaticIdentityResolver
from readiness_guard.api.server import create_app
from readiness_guard.config import Settings, override_settings
from readiness_guard.security.models import AuthenticatedPrincipal

TEST_SECRET = "test-secret-0123456789abcdef-test-secret"


class FakeClock:
    """Millisecond clock under test control."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


# ---------------------------------------------------------------------------
# Settings / clock
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def test_settings() -> Settings:
    settings = Settings(
        server={"environment": "test"},
        csrf={"secret": TEST_SECRET},
        logging={"level": "debug", "format": "console"},
    )
    override_settings(settings)
    return settings


# ---------------------------------------------------------------------------
# Principals
# ---------------------------------------------------------------------------


@pytest.fixture
def user_principal() -> AuthenticatedPrincipal:
    return AuthenticatedPrincipal(id="u-1", role="user", organization_id="org-123", email="u1@example.com")


@pytest.fixture
def org_admin_principal() -> AuthenticatedPrincipal:
    return AuthenticatedPrincipal(id="oa-1", role="org_admin", organization_id="org-123")


@pytest.fixture
def system_admin_principal() -> AuthenticatedPrincipal:
    return AuthenticatedPrincipal(id="sa-1", role="system_admin", organization_id="org-123")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


@pytest.fixture
def app(test_settings: Settings) -> FastAPI:
    return create_app(settings=test_settings)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def static_app(test_settings: Settings) -> Callable[[AuthenticatedPrincipal | None], FastAPI]:
    """Factory for apps whose identity is fixed regardless of headers."""

    def _make(principal: AuthenticatedPrincipal | None) -> FastAPI:
        return create_app(settings=test_settings, identity_resolver=StaticIdentityResolver(principal))

    return _make
