"""API layer — Request and response schemas.

Field names on the wire are camelCase to match the web front end; Python
attributes stay snake_case.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ResourceCheckRequest(_CamelModel):
    resource: str
    action: str
    scope: str
    resource_org_id: str | None = None
    resource_user_id: str | None = None


class PermissionCheckRequest(_CamelModel):
    """POST /api/auth/check-permission"""

    type: Literal["permission", "route", "organization", "resource", "user_permissions"]
    permission: str | None = None
    route: str | None = None
    organization_id: str | None = None
    resource_check: ResourceCheckRequest | None = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class PermissionCheckResponse(_CamelModel):
    success: bool = True
    has_permission: bool
    user_role: str
    user_org_id: str | None = None
    permissions: list[str] | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class RoleCapabilities(_CamelModel):
    can_access_admin: bool
    can_access_org_data: bool
    can_manage_users: bool
    can_export_data: bool
    can_manage_system: bool


class PrincipalPermissionsResponse(_CamelModel):
    """GET /api/auth/check-permission"""

    success: bool = True
    authenticated: bool = True
    user: dict[str, Any]
    permissions: list[str]
    role_permissions: RoleCapabilities


class CSRFTokenResponse(_CamelModel):
    csrf_token: str
    header_name: str
    expires_in_ms: int


class HealthResponse(BaseModel):
    status: Literal["ok", "degraded"] = "ok"
    version: str
    uptime_seconds: float
    security: dict[str, Any]


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: Any = None
    request_id: str | None = None
