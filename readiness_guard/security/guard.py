"""Security layer — Route guard.

The RouteGuard decides, per request path, whether the caller may proceed.
It takes an already-resolved ``IdentityResult`` so the decision itself is
synchronous; awaiting the identity provider happens in the middleware.

Checks performed (in order, terminal on the first that applies):
  1. Admin prefixes (``/admin``, ``/system``) — login redirect, admin tier,
     system tier for ``/system``
  2. Organization prefix (``/organization``) — login redirect, membership,
     ``can_access_organization`` on the embedded organization id
  3. Protected API families — 401 JSON without a principal, role check
  4. Anything else continues unguarded

Prefixes match on path-segment boundaries: ``/admin`` guards ``/admin`` and
``/admin/users`` but not ``/administrators``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote

from readiness_guard.config import ApiRouteRule, RouteGuardConfig
from readiness_guard.logging import get_logger
from readiness_guard.security.models import AuthenticatedPrincipal, IdentityResult
from readiness_guard.security.rbac import can_access_organization, has_required_role, is_top_tier

log = get_logger(__name__)


class GuardOutcome(str, Enum):
    CONTINUE = "continue"
    REDIRECT = "redirect"
    DENY = "deny"


@dataclass(frozen=True)
class GuardDecision:
    kind: GuardOutcome
    status_code: int = 200
    location: str | None = None
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def allowed(self) -> bool:
        return self.kind is GuardOutcome.CONTINUE

    @classmethod
    def proceed(cls) -> "GuardDecision":
        return cls(kind=GuardOutcome.CONTINUE)

    @classmethod
    def redirect(cls, location: str) -> "GuardDecision":
        return cls(kind=GuardOutcome.REDIRECT, status_code=302, location=location)

    @classmethod
    def deny(cls, status_code: int, body: dict[str, Any]) -> "GuardDecision":
        return cls(kind=GuardOutcome.DENY, status_code=status_code, body=body)


def _matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


class RouteGuard:
    """Applies the admin / organization / API route rules.

    Usage::

        guard = RouteGuard(settings.route_guard)
        decision = guard.evaluate("/admin/users", identity)
        if not decision.allowed:
            ...  # translate into a 302 or a JSON error response
    """

    def __init__(self, config: RouteGuardConfig | None = None) -> None:
        self._config = config or RouteGuardConfig()

    @property
    def config(self) -> RouteGuardConfig:
        return self._config

    def evaluate(self, path: str, identity: IdentityResult) -> GuardDecision:
        cfg = self._config

        if any(_matches(path, p) for p in cfg.admin_prefixes):
            return self._check_admin(path, identity)

        if _matches(path, cfg.organization_prefix):
            return self._check_organization(path, identity)

        for rule in cfg.api_rules:
            if _matches(path, rule.prefix):
                return self._check_api(path, rule, identity)

        return GuardDecision.proceed()

    def login_redirect(self, path: str) -> str:
        return f"{self._config.login_path}?redirectTo={quote(path, safe='/')}"

    # ------------------------------------------------------------------
    # Rule families
    # ------------------------------------------------------------------

    def _check_admin(self, path: str, identity: IdentityResult) -> GuardDecision:
        cfg = self._config
        principal = identity.principal
        if principal is None:
            log.info("route_redirect_login", path=path, reason=identity.error)
            return GuardDecision.redirect(self.login_redirect(path))

        if not has_required_role(principal.role, cfg.admin_roles):
            return self._deny_role(
                path,
                principal,
                "Access denied. Admin privileges required.",
                cfg.admin_roles,
            )

        if any(_matches(path, p) for p in cfg.system_prefixes) and not has_required_role(
            principal.role, cfg.system_roles
        ):
            return self._deny_role(
                path,
                principal,
                "Access denied. System administrator privileges required.",
                cfg.system_roles,
            )

        return GuardDecision.proceed()

    def _check_organization(self, path: str, identity: IdentityResult) -> GuardDecision:
        cfg = self._config
        principal = identity.principal
        if principal is None:
            log.info("route_redirect_login", path=path, reason=identity.error)
            return GuardDecision.redirect(self.login_redirect(path))

        if not principal.organization_id and not is_top_tier(principal.role):
            log.info("route_denied", path=path, user_role=principal.role, reason="no_organization")
            return GuardDecision.deny(
                403,
                {
                    "error": "Access denied. Organization membership required.",
                    "userRole": principal.role,
                    "hasOrganization": False,
                },
            )

        requested_org_id = self._embedded_org_id(path)
        if requested_org_id is not None and not can_access_organization(
            principal.role, principal.organization_id, requested_org_id
        ):
            log.info(
                "route_denied",
                path=path,
                user_role=principal.role,
                requested_org_id=requested_org_id,
            )
            return GuardDecision.deny(
                403,
                {
                    "error": "Access denied. You can only access your own organization.",
                    "userRole": principal.role,
                    "requestedOrgId": requested_org_id,
                },
            )

        return GuardDecision.proceed()

    def _check_api(
        self, path: str, rule: ApiRouteRule, identity: IdentityResult
    ) -> GuardDecision:
        principal = identity.principal
        if principal is None:
            log.info("api_unauthenticated", path=path, reason=identity.error)
            return GuardDecision.deny(
                401,
                {
                    "error": "Authentication required",
                    "message": identity.error or "No valid session found",
                },
            )

        if rule.required_roles and not has_required_role(principal.role, rule.required_roles):
            return self._deny_role(path, principal, rule.message, rule.required_roles)

        return GuardDecision.proceed()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _deny_role(
        self,
        path: str,
        principal: AuthenticatedPrincipal,
        message: str,
        required_roles: list[str],
    ) -> GuardDecision:
        log.info(
            "route_denied",
            path=path,
            user_role=principal.role,
            required_roles=required_roles,
        )
        return GuardDecision.deny(
            403,
            {
                "error": message,
                "requiredRoles": list(required_roles),
                "userRole": principal.role,
            },
        )

    def _embedded_org_id(self, path: str) -> str | None:
        prefix = self._config.organization_prefix.rstrip("/")
        rest = path[len(prefix):].strip("/")
        if not rest:
            return None
        segment = rest.split("/", 1)[0]
        if segment in self._config.organization_subpages:
            return None
        return segment
