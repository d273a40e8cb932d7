"""Security endpoints.

GET  /api/security/csrf-token           — Issue a CSRF token for the caller's session.
POST /api/auth/check-permission         — Answer one authorization question.
GET  /api/auth/check-permission         — Describe the caller's permissions.
GET  /api/admin/security/metrics        — Aggregated monitor metrics.
GET  /api/admin/security/report         — Dashboard report.
GET  /api/admin/security/ip/{ip}        — Per-IP activity summary.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request, Response

from readiness_guard.api.dependencies import (
    AdminDep,
    ConfigDep,
    CSRFServiceDep,
    MonitorDep,
    PrincipalDep,
    RouteTableDep,
)
from readiness_guard.api.middleware import request_facts
from readiness_guard.api.schemas import (
    CSRFTokenResponse,
    PermissionCheckRequest,
    PermissionCheckResponse,
    PrincipalPermissionsResponse,
    RoleCapabilities,
)
from readiness_guard.logging import get_logger
from readiness_guard.security.catalog import Permission, get_role_permissions
from readiness_guard.security.csrf import csrf_cookie_header, session_id_for
from readiness_guard.security.models import ResourceCheck
from readiness_guard.security.rbac import (
    can_access_organization,
    can_access_route,
    can_perform_action,
    has_permission,
)

log = get_logger(__name__)

router = APIRouter(tags=["security"])

_DAY_MS = 24 * 60 * 60 * 1000


# ---------------------------------------------------------------------------
# CSRF
# ---------------------------------------------------------------------------


@router.get(
    "/api/security/csrf-token",
    response_model=CSRFTokenResponse,
    summary="Issue a CSRF token",
)
async def issue_csrf_token(
    request: Request,
    response: Response,
    config: ConfigDep,
    csrf: CSRFServiceDep,
) -> CSRFTokenResponse:
    facts = request_facts(request, config)
    token = csrf.create_token(session_id_for(facts, config.csrf))
    response.headers.append("set-cookie", csrf_cookie_header(token, config.csrf))
    response.headers["X-CSRF-Token"] = token
    return CSRFTokenResponse(
        csrf_token=token,
        header_name=config.csrf.header_name,
        expires_in_ms=config.csrf.session_timeout_ms,
    )


# ---------------------------------------------------------------------------
# Permission checks
# ---------------------------------------------------------------------------


@router.post(
    "/api/auth/check-permission",
    response_model=PermissionCheckResponse,
    response_model_exclude_none=True,
    summary="Check a single permission, route, organization or resource",
)
async def check_permission(
    body: PermissionCheckRequest,
    principal: PrincipalDep,
    table: RouteTableDep,
) -> PermissionCheckResponse:
    role = principal.role
    org_id = principal.organization_id
    details: dict[str, Any] = {}

    if body.type == "permission":
        if not body.permission:
            raise HTTPException(status_code=400, detail="Permission parameter required")
        allowed = has_permission(role, body.permission)
        details["permission"] = body.permission

    elif body.type == "route":
        if not body.route:
            raise HTTPException(status_code=400, detail="Route parameter required")
        allowed = can_access_route(role, body.route, table)
        details["route"] = body.route

    elif body.type == "organization":
        if not body.organization_id:
            raise HTTPException(status_code=400, detail="Organization ID required")
        allowed = can_access_organization(role, org_id, body.organization_id)
        details["organizationId"] = body.organization_id
        details["userOrgId"] = org_id

    elif body.type == "resource":
        if body.resource_check is None:
            raise HTTPException(status_code=400, detail="Resource check parameters required")
        check = ResourceCheck(
            resource=body.resource_check.resource,
            action=body.resource_check.action,
            scope=body.resource_check.scope,
            resource_org_id=body.resource_check.resource_org_id,
            resource_user_id=body.resource_check.resource_user_id,
        )
        allowed = can_perform_action(role, org_id, principal.id, check)
        details["resourceCheck"] = body.resource_check.model_dump(by_alias=True)

    else:  # user_permissions
        return PermissionCheckResponse(
            has_permission=True,
            user_role=role,
            user_org_id=org_id,
            permissions=sorted(get_role_permissions(role)),
            details={"type": "user_permissions"},
        )

    log.debug("permission_checked", type=body.type, role=role, allowed=allowed)
    return PermissionCheckResponse(
        has_permission=allowed,
        user_role=role,
        user_org_id=org_id,
        details=details,
    )


@router.get(
    "/api/auth/check-permission",
    response_model=PrincipalPermissionsResponse,
    summary="Describe the caller's permissions",
)
async def describe_permissions(principal: PrincipalDep) -> PrincipalPermissionsResponse:
    role = principal.role
    return PrincipalPermissionsResponse(
        user={
            "id": principal.id,
            "email": principal.email,
            "role": role,
            "organizationId": principal.organization_id,
        },
        permissions=sorted(get_role_permissions(role)),
        role_permissions=RoleCapabilities(
            can_access_admin=has_permission(role, Permission.ADMIN_DASHBOARD),
            can_access_org_data=has_permission(role, Permission.SURVEY_VIEW_ORG),
            can_manage_users=has_permission(role, Permission.USER_EDIT_ORG),
            can_export_data=has_permission(role, Permission.API_EXPORT_ACCESS),
            can_manage_system=has_permission(role, Permission.ADMIN_SYSTEM_CONFIG),
        ),
    )


# ---------------------------------------------------------------------------
# Monitor views
# ---------------------------------------------------------------------------


@router.get("/api/admin/security/metrics", summary="Security metrics for a trailing window")
async def security_metrics(
    _admin: AdminDep,
    monitor: MonitorDep,
    window_ms: int = Query(default=_DAY_MS, ge=1000),
) -> dict[str, Any]:
    return monitor.get_metrics(window_ms).to_dict()


@router.get("/api/admin/security/report", summary="Security report for dashboards")
async def security_report(
    _admin: AdminDep,
    monitor: MonitorDep,
    window_ms: int = Query(default=_DAY_MS, ge=1000),
) -> dict[str, Any]:
    return monitor.generate_security_report(window_ms)


@router.get("/api/admin/security/ip/{ip}", summary="Activity summary for one client IP")
async def ip_activity(
    ip: str,
    _admin: AdminDep,
    monitor: MonitorDep,
    window_ms: int = Query(default=_DAY_MS, ge=1000),
) -> dict[str, Any]:
    return monitor.ip_summary(ip, window_ms)
