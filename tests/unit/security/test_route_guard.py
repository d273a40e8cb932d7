"""Unit tests — RouteGuard decisions on admin, organization and API paths."""

from __future__ import annotations

import pytest

from readiness_guard.config import ApiRouteRule, RouteGuardConfig
from readiness_guard.security.guard import GuardDecision, GuardOutcome, RouteGuard
from readiness_guard.security.models import AuthenticatedPrincipal, IdentityResult

pytestmark = pytest.mark.unit

ANONYMOUS = IdentityResult.anonymous("Session expired")


def _as(role: str, org: str | None = "org-123") -> IdentityResult:
    return IdentityResult.of(AuthenticatedPrincipal(id=f"{role}-1", role=role, organization_id=org))


@pytest.fixture
def guard() -> RouteGuard:
    return RouteGuard()


class TestAdminPaths:
    def test_user_on_admin_gets_403_with_roles(self, guard: RouteGuard) -> None:
        decision = guard.evaluate("/admin", _as("user"))
        assert decision.kind is GuardOutcome.DENY
        assert decision.status_code == 403
        assert decision.body["requiredRoles"] == ["org_admin", "system_admin"]
        assert decision.body["userRole"] == "user"

    def test_anonymous_redirected_to_login(self, guard: RouteGuard) -> None:
        decision = guard.evaluate("/admin/users", ANONYMOUS)
        assert decision.kind is GuardOutcome.REDIRECT
        assert decision.status_code == 302
        assert decision.location == "/auth/login?redirectTo=/admin/users"

    def test_redirect_target_is_url_encoded(self, guard: RouteGuard) -> None:
        assert guard.login_redirect("/admin/a b") == "/auth/login?redirectTo=/admin/a%20b"

    def test_org_admin_allowed(self, guard: RouteGuard) -> None:
        assert guard.evaluate("/admin/users", _as("org_admin")).allowed

    def test_system_path_needs_system_tier(self, guard: RouteGuard) -> None:
        decision = guard.evaluate("/system/config", _as("org_admin"))
        assert decision.status_code == 403
        assert decision.body["error"] == "Access denied. System administrator privileges required."
        assert decision.body["requiredRoles"] == ["system_admin"]

    @pytest.mark.parametrize("role", ["system_admin", "super_admin"])
    def test_top_tier_reaches_system(self, guard: RouteGuard, role: str) -> None:
        assert guard.evaluate("/system", _as(role)).allowed

    def test_prefix_matches_whole_segments(self, guard: RouteGuard) -> None:
        assert guard.evaluate("/administrators", ANONYMOUS).allowed


class TestOrganizationPaths:
    def test_top_tier_bypasses_org_match(self, guard: RouteGuard) -> None:
        assert guard.evaluate("/organization/org-999", _as("system_admin", "org-123")).allowed

    def test_member_of_other_org_denied(self, guard: RouteGuard) -> None:
        decision = guard.evaluate("/organization/org-999/settings", _as("user", "org-123"))
        assert decision.status_code == 403
        assert decision.body == {
            "error": "Access denied. You can only access your own organization.",
            "userRole": "user",
            "requestedOrgId": "org-999",
        }

    def test_member_of_same_org_allowed(self, guard: RouteGuard) -> None:
        assert guard.evaluate("/organization/org-123", _as("org_admin", "org-123")).allowed

    def test_subpages_are_not_org_ids(self, guard: RouteGuard) -> None:
        assert guard.evaluate("/organization/surveys", _as("user", "org-123")).allowed
        assert guard.evaluate("/organization", _as("user", "org-123")).allowed

    def test_no_organization_denied(self, guard: RouteGuard) -> None:
        decision = guard.evaluate("/organization/surveys", _as("user", None))
        assert decision.status_code == 403
        assert decision.body["hasOrganization"] is False

    def test_top_tier_without_organization_allowed(self, guard: RouteGuard) -> None:
        assert guard.evaluate("/organization/org-1", _as("super_admin", None)).allowed

    def test_anonymous_redirected(self, guard: RouteGuard) -> None:
        decision = guard.evaluate("/organization/org-1", ANONYMOUS)
        assert decision.kind is GuardOutcome.REDIRECT


class TestApiPaths:
    def test_anonymous_gets_401_json(self, guard: RouteGuard) -> None:
        decision = guard.evaluate("/api/admin/security/metrics", ANONYMOUS)
        assert decision.status_code == 401
        assert decision.body == {"error": "Authentication required", "message": "Session expired"}

    def test_non_admin_gets_403(self, guard: RouteGuard) -> None:
        decision = guard.evaluate("/api/export/responses", _as("analyst"))
        assert decision.status_code == 403
        assert decision.body["error"] == "Access denied. Export privileges required."

    def test_batch_needs_only_authentication(self, guard: RouteGuard) -> None:
        assert guard.evaluate("/api/llm/batch", _as("viewer")).allowed
        assert guard.evaluate("/api/llm/batch", ANONYMOUS).status_code == 401

    def test_unlisted_paths_continue(self, guard: RouteGuard) -> None:
        assert guard.evaluate("/api/llm/analyze", ANONYMOUS).allowed
        assert guard.evaluate("/surveys/42", ANONYMOUS).allowed


class TestCustomConfig:
    def test_custom_login_path_and_rules(self) -> None:
        guard = RouteGuard(
            RouteGuardConfig(
                login_path="/signin",
                api_rules=[ApiRouteRule(prefix="/api/reports", required_roles=["analyst"])],
            )
        )
        assert guard.evaluate("/admin", ANONYMOUS).location == "/signin?redirectTo=/admin"
        assert guard.evaluate("/api/reports/q3", _as("analyst")).allowed
        assert guard.evaluate("/api/reports/q3", _as("user")).status_code == 403

    def test_decision_constructors(self) -> None:
        assert GuardDecision.proceed().allowed
        assert not GuardDecision.deny(403, {}).allowed
        assert GuardDecision.redirect("/x").location == "/x"
