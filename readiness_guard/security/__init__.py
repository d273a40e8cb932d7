"""Security layer — RBAC, route guard, rate limiting, CSRF tokens, monitoring."""

from readiness_guard.security.catalog import (
    DEFAULT_ROUTE_PERMISSIONS,
    ROLE_HIERARCHY,
    ROLE_PERMISSIONS,
    Permission,
    get_role_permissions,
)
from readiness_guard.security.csrf import CSRFTokenService, derive_session_id
from readiness_guard.security.guard import GuardDecision, GuardOutcome, RouteGuard
from readiness_guard.security.models import (
    AuthenticatedPrincipal,
    CSRFValidation,
    IdentityResult,
    RateLimitEntry,
    RateLimitResult,
    RequestFacts,
    ResourceCheck,
    Role,
    RouteDecision,
    SecurityAlert,
    SecurityEvent,
    SecurityEventType,
    SecurityMetrics,
    SecuritySeverity,
)
from readiness_guard.security.monitor import SecurityEventLog, SecurityMonitor
from readiness_guard.security.rate_limiter import (
    InMemoryRateLimitStore,
    RateLimiter,
    RateLimitStore,
    select_policy,
)
from readiness_guard.security.rbac import (
    can_access_organization,
    can_access_route,
    can_perform_action,
    has_all_permissions,
    has_any_permission,
    has_permission,
    is_role_equal_or_higher,
)
from readiness_guard.security.routes import DEFAULT_ROUTE_TABLE, RouteTable, route_table_for

__all__ = [
    # Catalog
    "Permission",
    "ROLE_HIERARCHY",
    "ROLE_PERMISSIONS",
    "DEFAULT_ROUTE_PERMISSIONS",
    "get_role_permissions",
    # Evaluator
    "has_permission",
    "has_any_permission",
    "has_all_permissions",
    "is_role_equal_or_higher",
    "can_access_organization",
    "can_perform_action",
    "can_access_route",
    "RouteTable",
    "DEFAULT_ROUTE_TABLE",
    "route_table_for",
    # Guard
    "RouteGuard",
    "GuardDecision",
    "GuardOutcome",
    # Rate limiting
    "RateLimiter",
    "RateLimitStore",
    "InMemoryRateLimitStore",
    "select_policy",
    # CSRF
    "CSRFTokenService",
    "derive_session_id",
    # Monitoring
    "SecurityMonitor",
    "SecurityEventLog",
    # Models
    "Role",
    "AuthenticatedPrincipal",
    "IdentityResult",
    "ResourceCheck",
    "RouteDecision",
    "RequestFacts",
    "RateLimitEntry",
    "RateLimitResult",
    "CSRFValidation",
    "SecurityEvent",
    "SecurityEventType",
    "SecuritySeverity",
    "SecurityMetrics",
    "SecurityAlert",
]
