"""Security layer — Permission catalog.

Static role → permission mapping.  Pure data: nothing here performs a
decision, see ``security.rbac`` for the evaluator.

Permission strings follow ``resource:action:scope`` where scope is one of
``own``, ``org`` or ``all``.  A handful of tier/API permissions
(``admin:dashboard``, ``api:llm:access``, ``survey:create`` ...) do not carry
a scope.  Every ``*:all`` permission belongs to the top tier only.

Inheritance (each set is a superset of the sets it inherits from)::

    viewer ⊂ user ⊂ analyst
              user ⊂ org_admin ⊂ system_admin == super_admin
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping


class Permission:
    """Well-known permission identifiers.

    Plain string constants rather than an enum so that route tables loaded
    from configuration can reference them as bare strings.
    """

    # -- Surveys ------------------------------------------------------------
    SURVEY_VIEW_OWN = "survey:view:own"
    SURVEY_CREATE = "survey:create"
    SURVEY_EDIT_OWN = "survey:edit:own"
    SURVEY_DELETE_OWN = "survey:delete:own"
    SURVEY_VIEW_ORG = "survey:view:org"
    SURVEY_EDIT_ORG = "survey:edit:org"
    SURVEY_DELETE_ORG = "survey:delete:org"
    SURVEY_VIEW_ALL = "survey:view:all"
    SURVEY_EDIT_ALL = "survey:edit:all"
    SURVEY_DELETE_ALL = "survey:delete:all"

    # -- Users --------------------------------------------------------------
    USER_VIEW_OWN = "user:view:own"
    USER_EDIT_OWN = "user:edit:own"
    USER_VIEW_ORG = "user:view:org"
    USER_EDIT_ORG = "user:edit:org"
    USER_VIEW_ALL = "user:view:all"
    USER_EDIT_ALL = "user:edit:all"
    USER_DELETE_ALL = "user:delete:all"

    # -- Organizations ------------------------------------------------------
    ORG_VIEW_OWN = "org:view:own"
    ORG_EDIT_OWN = "org:edit:own"
    ORG_VIEW_ALL = "org:view:all"
    ORG_EDIT_ALL = "org:edit:all"
    ORG_DELETE_ALL = "org:delete:all"

    # -- Administration -----------------------------------------------------
    ADMIN_DASHBOARD = "admin:dashboard"
    ADMIN_SYSTEM_CONFIG = "admin:system:config"
    ADMIN_ANALYTICS_ALL = "admin:analytics:all"
    ADMIN_EXPORT_ALL = "admin:export:all"

    # -- API families -------------------------------------------------------
    API_LLM_ACCESS = "api:llm:access"
    API_EXPORT_ACCESS = "api:export:access"
    API_ADMIN_ACCESS = "api:admin:access"


ALL_PERMISSIONS: frozenset[str] = frozenset(
    value
    for name, value in vars(Permission).items()
    if name.isupper() and isinstance(value, str)
)

SCOPES: frozenset[str] = frozenset({"own", "org", "all"})


# ---------------------------------------------------------------------------
# Role hierarchy
# ---------------------------------------------------------------------------

ROLE_HIERARCHY: Mapping[str, int] = MappingProxyType(
    {
        "viewer": 0,
        "user": 1,
        "analyst": 2,
        "org_admin": 3,
        "system_admin": 4,
        "super_admin": 4,
    }
)

TOP_TIER_ROLES: frozenset[str] = frozenset(
    role for role, rank in ROLE_HIERARCHY.items() if rank == max(ROLE_HIERARCHY.values())
)

# Declared inheritance edges: child → parents whose permissions it includes.
ROLE_INHERITANCE: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "viewer": (),
        "user": ("viewer",),
        "analyst": ("user",),
        "org_admin": ("user",),
        "system_admin": ("org_admin",),
        "super_admin": ("system_admin",),
    }
)

ROLE_DISPLAY_NAMES: Mapping[str, str] = MappingProxyType(
    {
        "viewer": "Viewer",
        "user": "User",
        "analyst": "Analyst",
        "org_admin": "Organization Admin",
        "system_admin": "System Admin",
        "super_admin": "Super Admin",
    }
)


# ---------------------------------------------------------------------------
# Role → permission sets
# ---------------------------------------------------------------------------

_VIEWER = frozenset({Permission.SURVEY_VIEW_OWN, Permission.USER_VIEW_OWN})

_USER = frozenset(
    {
        Permission.SURVEY_VIEW_OWN,
        Permission.SURVEY_CREATE,
        Permission.SURVEY_EDIT_OWN,
        Permission.SURVEY_DELETE_OWN,
        Permission.USER_VIEW_OWN,
        Permission.USER_EDIT_OWN,
        Permission.API_LLM_ACCESS,
    }
)

_ANALYST_EXTRA = frozenset({Permission.SURVEY_VIEW_ORG, Permission.USER_VIEW_ORG})

_ORG_ADMIN_EXTRA = frozenset(
    {
        Permission.SURVEY_VIEW_ORG,
        Permission.SURVEY_EDIT_ORG,
        Permission.SURVEY_DELETE_ORG,
        Permission.USER_VIEW_ORG,
        Permission.USER_EDIT_ORG,
        Permission.ORG_VIEW_OWN,
        Permission.ORG_EDIT_OWN,
        Permission.API_EXPORT_ACCESS,
    }
)

_SYSTEM_ADMIN_EXTRA = frozenset(
    {
        Permission.SURVEY_VIEW_ALL,
        Permission.SURVEY_EDIT_ALL,
        Permission.SURVEY_DELETE_ALL,
        Permission.USER_VIEW_ALL,
        Permission.USER_EDIT_ALL,
        Permission.USER_DELETE_ALL,
        Permission.ORG_VIEW_ALL,
        Permission.ORG_EDIT_ALL,
        Permission.ORG_DELETE_ALL,
        Permission.ADMIN_DASHBOARD,
        Permission.ADMIN_SYSTEM_CONFIG,
        Permission.ADMIN_ANALYTICS_ALL,
        Permission.ADMIN_EXPORT_ALL,
        Permission.API_ADMIN_ACCESS,
    }
)

_SYSTEM_ADMIN = _USER | _ORG_ADMIN_EXTRA | _SYSTEM_ADMIN_EXTRA

ROLE_PERMISSIONS: Mapping[str, frozenset[str]] = MappingProxyType(
    {
        "viewer": _VIEWER,
        "user": _USER,
        "analyst": _USER | _ANALYST_EXTRA,
        "org_admin": _USER | _ORG_ADMIN_EXTRA,
        "system_admin": _SYSTEM_ADMIN,
        "super_admin": _SYSTEM_ADMIN,
    }
)


# ---------------------------------------------------------------------------
# Route → permission table
# ---------------------------------------------------------------------------

DEFAULT_ROUTE_PERMISSIONS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        # Admin pages
        "/admin": (Permission.ADMIN_DASHBOARD,),
        "/admin/surveys": (Permission.ADMIN_DASHBOARD, Permission.SURVEY_VIEW_ALL),
        "/admin/users": (Permission.ADMIN_DASHBOARD, Permission.USER_VIEW_ALL),
        "/admin/organizations": (Permission.ADMIN_DASHBOARD, Permission.ORG_VIEW_ALL),
        "/admin/analytics": (Permission.ADMIN_DASHBOARD, Permission.ADMIN_ANALYTICS_ALL),
        "/admin/reports": (Permission.ADMIN_DASHBOARD, Permission.ADMIN_ANALYTICS_ALL),
        "/admin/export": (Permission.ADMIN_DASHBOARD, Permission.ADMIN_EXPORT_ALL),
        "/system": (Permission.ADMIN_SYSTEM_CONFIG,),
        "/system/config": (Permission.ADMIN_SYSTEM_CONFIG,),
        "/system/ai": (Permission.ADMIN_SYSTEM_CONFIG,),
        # Organization pages
        "/organization": (Permission.ORG_VIEW_OWN,),
        "/organization/surveys": (Permission.SURVEY_VIEW_ORG,),
        "/organization/analytics": (Permission.SURVEY_VIEW_ORG,),
        "/organization/reports": (Permission.SURVEY_VIEW_ORG,),
        # API families
        "/api/admin": (Permission.API_ADMIN_ACCESS,),
        "/api/llm": (Permission.API_LLM_ACCESS,),
        "/api/export": (Permission.API_EXPORT_ACCESS,),
    }
)


def get_role_permissions(role: str | None) -> frozenset[str]:
    """Return the permission set of *role*; empty for unknown roles."""
    if role is None:
        return frozenset()
    return ROLE_PERMISSIONS.get(role, frozenset())


def is_known_role(role: str | None) -> bool:
    return role is not None and role in ROLE_HIERARCHY
