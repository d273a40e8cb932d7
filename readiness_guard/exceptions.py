"""readiness-guard — Exception hierarchy.

All exceptions raised by the package inherit from GuardError so that callers
can catch the full family with a single except clause when needed.

Decision functions (RBAC evaluator, rate limiter, CSRF service, monitor)
never raise: they return result objects.  These exceptions are raised at the
HTTP seam (FastAPI dependencies, middleware) and mapped to JSON responses by
``api.middleware.build_error_handler``.

Hierarchy:
    GuardError
    ├── ConfigurationError
    └── SecurityError
        ├── AuthenticationRequiredError
        ├── AccessDeniedError
        │   └── OrganizationAccessDeniedError
        └── CSRFValidationError
"""

from __future__ import annotations

from typing import Any


class GuardError(Exception):
    """Base exception for all readiness-guard errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


class ConfigurationError(GuardError):
    """Settings failed validation or reference an unknown role/policy."""


# ---------------------------------------------------------------------------
# Security layer
# ---------------------------------------------------------------------------


class SecurityError(GuardError):
    """Base for all security-related errors."""


class AuthenticationRequiredError(SecurityError):
    """No verified principal could be resolved for the request."""

    def __init__(self, reason: str = "No valid session found") -> None:
        super().__init__(
            "Authentication required",
            context={"reason": reason},
        )
        self.reason = reason


class AccessDeniedError(SecurityError):
    """The principal's role or permissions are insufficient."""

    def __init__(
        self,
        message: str,
        user_role: str | None = None,
        required_roles: list[str] | None = None,
        required_permissions: list[str] | None = None,
    ) -> None:
        context: dict[str, Any] = {"user_role": user_role}
        if required_roles is not None:
            context["required_roles"] = required_roles
        if required_permissions is not None:
            context["required_permissions"] = required_permissions
        super().__init__(message, context=context)
        self.user_role = user_role
        self.required_roles = required_roles or []
        self.required_permissions = required_permissions or []


class OrganizationAccessDeniedError(AccessDeniedError):
    """The principal tried to reach another tenant's organization."""

    def __init__(self, user_role: str | None, requested_org_id: str) -> None:
        super().__init__(
            "Access denied. You can only access your own organization.",
            user_role=user_role,
        )
        self.context["requested_org_id"] = requested_org_id
        self.requested_org_id = requested_org_id


class CSRFValidationError(SecurityError):
    """A state-changing request carried a missing, malformed, forged or expired token."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            f"CSRF protection failed: {reason}",
            context={"reason": reason},
        )
        self.reason = reason
