"""Security layer — RBAC evaluator.

Stateless functions answering "can this role / principal do X".  Every
function is pure and total: unknown roles hold no permissions, missing ids
never match, and nothing raises.

Usage::

    from readiness_guard.security.rbac import can_perform_action, has_permission

    has_permission("org_admin", "survey:edit:org")            # True
    can_perform_action(
        "user", "org-1", "u-1",
        ResourceCheck("survey", "edit", "own", resource_user_id="u-2"),
    )                                                          # False
"""

from __future__ import annotations

from typing import Iterable

from readiness_guard.security.catalog import (
    ROLE_DISPLAY_NAMES,
    ROLE_HIERARCHY,
    SCOPES,
    TOP_TIER_ROLES,
    get_role_permissions,
)
from readiness_guard.security.models import ResourceCheck, RouteDecision
from readiness_guard.security.routes import DEFAULT_ROUTE_TABLE, RouteTable

# Roles that may reach their own organization's data.  Anything else that is
# not top tier is denied.
_ORG_MEMBER_ROLES = frozenset({"org_admin", "user"})
_ADMIN_ROLES = frozenset({"org_admin"}) | TOP_TIER_ROLES


# ---------------------------------------------------------------------------
# Permission quantifiers
# ---------------------------------------------------------------------------


def has_permission(role: str | None, permission: str) -> bool:
    return permission in get_role_permissions(role)


def has_any_permission(role: str | None, permissions: Iterable[str]) -> bool:
    granted = get_role_permissions(role)
    return any(p in granted for p in permissions)


def has_all_permissions(role: str | None, permissions: Iterable[str]) -> bool:
    granted = get_role_permissions(role)
    return all(p in granted for p in permissions)


# ---------------------------------------------------------------------------
# Tier comparisons
# ---------------------------------------------------------------------------


def is_top_tier(role: str | None) -> bool:
    return role in TOP_TIER_ROLES


def is_role_equal_or_higher(role: str | None, required_role: str) -> bool:
    """Compare hierarchy ranks.  Unknown roles on either side compare False."""
    if role is None:
        return False
    rank = ROLE_HIERARCHY.get(role)
    required = ROLE_HIERARCHY.get(required_role)
    if rank is None or required is None:
        return False
    return rank >= required


def has_required_role(role: str | None, required_roles: Iterable[str]) -> bool:
    """True when *role* ranks at or above any of *required_roles*."""
    return any(is_role_equal_or_higher(role, r) for r in required_roles)


def is_admin(role: str | None) -> bool:
    return role in _ADMIN_ROLES


def can_manage_org(role: str | None) -> bool:
    return role in _ADMIN_ROLES


def can_manage_system(role: str | None) -> bool:
    return is_top_tier(role)


# ---------------------------------------------------------------------------
# Resource-level checks
# ---------------------------------------------------------------------------


def can_access_organization(
    role: str | None,
    user_org_id: str | None,
    target_org_id: str | None,
) -> bool:
    """Top tier reaches every organization; members only their own."""
    if is_top_tier(role):
        return True
    if role in _ORG_MEMBER_ROLES:
        return bool(user_org_id) and user_org_id == target_org_id
    return False


def can_perform_action(
    role: str | None,
    user_org_id: str | None,
    user_id: str | None,
    check: ResourceCheck,
) -> bool:
    """Two-phase check: catalog lookup, then ownership of the target resource.

    Holding ``survey:edit:own`` does not let a caller edit someone else's
    survey: the ``own`` scope additionally requires the resource's user id to
    be the caller's.  A scope outside ``own``/``org``/``all`` denies even
    when the catalog happens to hold the string.
    """
    if check.scope not in SCOPES or not has_permission(role, check.permission):
        return False

    if check.scope == "own":
        return bool(user_id) and check.resource_user_id == user_id
    if check.scope == "org":
        return bool(user_org_id) and check.resource_org_id == user_org_id
    return is_top_tier(role)


def resolve_route(path: str, table: RouteTable | None = None) -> RouteDecision:
    return (table or DEFAULT_ROUTE_TABLE).resolve(path)


def can_access_route(role: str | None, path: str, table: RouteTable | None = None) -> bool:
    """Check *path* against the route table.

    Undeclared routes resolve to ``RouteDecision.UNPROTECTED`` and are allowed
    for every role, including unknown ones.
    """
    decision = resolve_route(path, table)
    if not decision.protected:
        return True
    return has_any_permission(role, decision.permissions)


# ---------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------

_SCOPE_LABELS = {"own": "Own", "org": "Organization", "all": "All"}


def role_display_name(role: str) -> str:
    return ROLE_DISPLAY_NAMES.get(role, role)


def permission_display_name(permission: str) -> str:
    """``"survey:view:own"`` → ``"View Own Surveys"``."""
    parts = permission.split(":")
    if len(parts) == 3 and parts[2] in _SCOPE_LABELS:
        resource, action, scope = parts
        return f"{action.capitalize()} {_SCOPE_LABELS[scope]} {resource.capitalize()}s"
    words = permission.replace("_", " ").replace(":", " ").split()
    return " ".join(w.capitalize() for w in words)
