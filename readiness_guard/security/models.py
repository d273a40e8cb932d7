"""Security layer — Core data models.

Defines the value types exchanged between the decision components:
  - ``Role``                  — the role enumeration (values are the wire strings)
  - ``AuthenticatedPrincipal``— frozen identity supplied by the identity provider
  - ``IdentityResult``        — principal, or the "no principal" signal with a reason
  - ``ResourceCheck``         — one authorization question about a resource
  - ``RouteDecision``         — explicit UNPROTECTED / PROTECTED(permissions) outcome
  - ``RequestFacts``          — method, path, IP and headers extracted from a request
  - ``RateLimitEntry`` / ``RateLimitResult``
  - ``CSRFValidation``
  - ``SecurityEvent`` / ``SecurityMetrics`` / ``SecurityAlert`` and their enums

All models are plain dataclasses: they cross no process boundary and are
built on the hot path of every request.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, Mapping

from readiness_guard.exceptions import CSRFValidationError

UNKNOWN = "unknown"

# Millisecond wall clock.  Components take one as a constructor argument.
Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class Role(str, Enum):
    """Known roles.  Evaluators accept any string and deny unknown ones."""

    VIEWER = "viewer"
    USER = "user"
    ANALYST = "analyst"
    ORG_ADMIN = "org_admin"
    SYSTEM_ADMIN = "system_admin"
    SUPER_ADMIN = "super_admin"


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """Verified caller identity.  Read-only for the lifetime of one request."""

    id: str
    role: str
    organization_id: str | None = None
    email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "organization_id": self.organization_id,
            "email": self.email,
        }


@dataclass(frozen=True)
class IdentityResult:
    principal: AuthenticatedPrincipal | None = None
    error: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.principal is not None

    @classmethod
    def anonymous(cls, reason: str = "No valid session found") -> "IdentityResult":
        return cls(principal=None, error=reason)

    @classmethod
    def of(cls, principal: AuthenticatedPrincipal) -> "IdentityResult":
        return cls(principal=principal)


@dataclass(frozen=True)
class ResourceCheck:
    resource: str
    action: str
    scope: str
    resource_org_id: str | None = None
    resource_user_id: str | None = None

    @property
    def permission(self) -> str:
        return f"{self.resource}:{self.action}:{self.scope}"


# ---------------------------------------------------------------------------
# Route table outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RouteDecision:
    """Outcome of resolving a path against the route table.

    ``RouteDecision.UNPROTECTED`` is returned when no entry matches: the
    route is allowed for every caller.
    """

    protected: bool
    permissions: frozenset[str] = frozenset()
    pattern: str | None = None

    UNPROTECTED: ClassVar["RouteDecision"]

    @classmethod
    def protect(cls, permissions: frozenset[str] | set[str], pattern: str) -> "RouteDecision":
        return cls(protected=True, permissions=frozenset(permissions), pattern=pattern)


RouteDecision.UNPROTECTED = RouteDecision(protected=False)


# ---------------------------------------------------------------------------
# Request facts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequestFacts:
    """The subset of an HTTP request the defense layer reasons about.

    Header and cookie names are stored lower-cased.
    """

    method: str = "GET"
    path: str = "/"
    ip: str = UNKNOWN
    headers: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent") or UNKNOWN

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @classmethod
    def build(
        cls,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
        client_host: str | None = None,
        trust_forwarded: bool = True,
    ) -> "RequestFacts":
        """Normalise raw request data.

        The client IP is taken from the first ``X-Forwarded-For`` entry, then
        ``X-Real-IP`` (when *trust_forwarded*), then the socket peer, then
        ``"unknown"``.
        """
        lowered = {k.lower(): v for k, v in (headers or {}).items()}
        ip: str | None = None
        if trust_forwarded:
            forwarded = lowered.get("x-forwarded-for")
            if forwarded:
                ip = forwarded.split(",")[0].strip() or None
            if ip is None:
                ip = lowered.get("x-real-ip") or None
        if ip is None:
            ip = client_host or UNKNOWN
        return cls(
            method=method.upper(),
            path=path,
            ip=ip,
            headers=lowered,
            cookies=dict(cookies or {}),
        )


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


@dataclass
class RateLimitEntry:
    key: str
    window_start: int
    count: int


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_ms: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_at": self.reset_at,
        }
        if self.retry_after_ms is not None:
            data["retry_after_ms"] = self.retry_after_ms
        if self.error is not None:
            data["error"] = self.error
        return data


# ---------------------------------------------------------------------------
# CSRF
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CSRFValidation:
    valid: bool
    error: str | None = None

    def raise_for_error(self) -> None:
        if not self.valid:
            raise CSRFValidationError(self.error or "invalid token")


# ---------------------------------------------------------------------------
# Security events
# ---------------------------------------------------------------------------


class SecurityEventType(str, Enum):
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    CSRF_ATTACK = "csrf_attack"
    XSS_ATTEMPT = "xss_attempt"
    SQL_INJECTION_ATTEMPT = "sql_injection_attempt"
    MALICIOUS_FILE_UPLOAD = "malicious_file_upload"
    AUTHENTICATION_FAILURE = "authentication_failure"
    AUTHORIZATION_FAILURE = "authorization_failure"
    SUSPICIOUS_USER_AGENT = "suspicious_user_agent"
    LARGE_PAYLOAD = "large_payload"
    REPEATED_FAILED_REQUESTS = "repeated_failed_requests"
    SECURITY_HEADER_VIOLATION = "security_header_violation"
    PROTOCOL_VIOLATION = "protocol_violation"
    SUSPICIOUS_IP = "suspicious_ip"


class SecuritySeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def is_high(self) -> bool:
        return self in (SecuritySeverity.HIGH, SecuritySeverity.CRITICAL)


@dataclass(frozen=True)
class SecurityEvent:
    type: SecurityEventType
    severity: SecuritySeverity
    timestamp: int
    ip: str
    user_agent: str
    path: str
    method: str
    details: dict[str, Any] = field(default_factory=dict)
    blocked: bool = False
    user_id: str | None = None
    session_id: str | None = None
    id: str = field(default_factory=lambda: f"sec_{uuid.uuid4().hex[:16]}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "timestamp": datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc).isoformat(),
            "ip": self.ip,
            "user_agent": self.user_agent,
            "path": self.path,
            "method": self.method,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "details": self.details,
            "blocked": self.blocked,
        }


@dataclass(frozen=True)
class SecurityMetrics:
    total_events: int
    events_by_type: dict[str, int]
    events_by_severity: dict[str, int]
    top_ips: list[dict[str, Any]]
    unique_ips: int
    blocked_count: int
    window_start: int
    window_end: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_events": self.total_events,
            "events_by_type": self.events_by_type,
            "events_by_severity": self.events_by_severity,
            "top_ips": self.top_ips,
            "unique_ips": self.unique_ips,
            "blocked_count": self.blocked_count,
            "window_start": self.window_start,
            "window_end": self.window_end,
        }


@dataclass(frozen=True)
class SecurityAlert:
    """Fire a ``security_alert`` log entry when *threshold* events of *type*
    occur within *window_ms*, and POST the alert to *webhook_url* when set."""

    type: SecurityEventType
    threshold: int
    window_ms: int
    enabled: bool = True
    webhook_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "threshold": self.threshold,
            "window_ms": self.window_ms,
            "enabled": self.enabled,
            "webhook_url": self.webhook_url,
        }
