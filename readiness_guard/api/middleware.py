"""API layer — Request middleware.

- Request ID injection (X-Request-ID header) and log context binding
- Structured access logging
- Security response headers
- Request defense pipeline (patterns, IP block, route guard, CSRF, rate
  limit, payload inspection)
- Global exception handler → clean ErrorResponse
"""

from __future__ import annotations

import json
import math
import time
import uuid
from typing import Any
from urllib.parse import parse_qs

from fastapi import Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from readiness_guard.api.identity import resolve_identity
from readiness_guard.api.schemas import ErrorResponse
from readiness_guard.config import Settings
from readiness_guard.exceptions import (
    AccessDeniedError,
    AuthenticationRequiredError,
    ConfigurationError,
    CSRFValidationError,
    GuardError,
)
from readiness_guard.logging import bind_request_context, clear_request_context, get_logger
from readiness_guard.security.csrf import SAFE_METHODS, CSRFTokenService, session_id_for
from readiness_guard.security.guard import GuardOutcome, RouteGuard
from readiness_guard.security.models import RequestFacts, SecurityEventType, SecuritySeverity
from readiness_guard.security.monitor import SecurityMonitor
from readiness_guard.security.patterns import detect_suspicious_patterns, is_static_asset, scan_json_payload
from readiness_guard.security.rate_limiter import RateLimiter, rate_limit_headers, select_policy

log = get_logger(__name__)

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
_CSRF_BODY_FIELD = "csrf_token"


def request_facts(request: Request, settings: Settings) -> RequestFacts:
    return RequestFacts.build(
        method=request.method,
        path=request.url.path,
        headers=request.headers,
        cookies=request.cookies,
        client_host=request.client.host if request.client else None,
        trust_forwarded=settings.server.trust_forwarded_headers,
    )


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a unique X-Request-ID to every request and response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        bind_request_context(
            request_id=request_id,
            client_ip=request.client.host if request.client else None,
        )
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Log each request with timing information."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = round((time.time() - start) * 1000, 2)

        log.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
            request_id=getattr(request.state, "request_id", None),
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add CSP, HSTS (production only) and the hardening headers to every response."""

    def __init__(self, app: Any, headers: dict[str, str]) -> None:
        super().__init__(app)
        self._headers = headers

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        for name, value in self._headers.items():
            response.headers.setdefault(name, value)
        return response


class RequestDefenseMiddleware(BaseHTTPMiddleware):
    """Per-request defense pipeline.

    Stages, each terminal on failure:
      1. Suspicious-pattern heuristics are recorded; flagged IPs get 429.
      2. Route guard on the awaited identity (302 / 401 / 403).
      3. Static assets that passed the guard skip everything below.
      4. CSRF: safe methods receive a fresh token, unsafe ones must carry one (403).
      5. Rate limit with the path's policy (429).
      6. JSON bodies: size cap (413) and injection markers (400 in strict mode).

    Components are read from ``app.state`` so tests can swap them.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        static = is_static_asset(path)

        state = request.app.state
        settings: Settings = state.settings
        monitor: SecurityMonitor = state.security_monitor
        facts = request_facts(request, settings)

        # 1. Heuristics & IP block
        if settings.monitoring.enabled and not static:
            report = detect_suspicious_patterns(facts)
            if report.suspicious:
                monitor.log_event(
                    SecurityEventType.SUSPICIOUS_IP,
                    report.severity,
                    facts,
                    {"patterns": report.patterns},
                )
            if monitor.should_block_ip(facts.ip):
                monitor.log_event(
                    SecurityEventType.SUSPICIOUS_IP,
                    SecuritySeverity.HIGH,
                    facts,
                    {"reason": "IP blocked due to suspicious activity"},
                    blocked=True,
                )
                log.warning("ip_blocked", ip=facts.ip, path=path)
                return PlainTextResponse(
                    "Access Denied",
                    status_code=429,
                    headers={"Retry-After": str(settings.monitoring.block_retry_after_seconds)},
                )

        # 2. Route guard
        identity = await resolve_identity(request)
        if identity.principal is not None:
            bind_request_context(user_id=identity.principal.id)
        guard: RouteGuard = state.route_guard
        decision = guard.evaluate(path, identity)
        if decision.kind is GuardOutcome.REDIRECT:
            return RedirectResponse(decision.location or "/", status_code=decision.status_code)
        if decision.kind is GuardOutcome.DENY:
            if decision.status_code == 401:
                event_type, severity = SecurityEventType.AUTHENTICATION_FAILURE, SecuritySeverity.LOW
            else:
                event_type, severity = SecurityEventType.AUTHORIZATION_FAILURE, SecuritySeverity.MEDIUM
            monitor.log_event(event_type, severity, facts, {"error": decision.body.get("error")}, blocked=True)
            return JSONResponse(decision.body, status_code=decision.status_code)

        # A file suffix does not exempt a protected route from the guard.
        if static:
            return await call_next(request)

        # 3. CSRF
        issued_token: str | None = None
        csrf_cfg = settings.csrf
        if csrf_cfg.enabled and not any(path.startswith(p) for p in csrf_cfg.exempt_paths):
            service: CSRFTokenService = state.csrf_service
            session_id = session_id_for(facts, csrf_cfg)
            if facts.method in SAFE_METHODS:
                issued_token = service.create_token(session_id)
            else:
                token = facts.header(csrf_cfg.header_name) or await _csrf_token_from_body(request)
                result = service.validate_token(session_id, token)
                if not result.valid:
                    monitor.log_event(
                        SecurityEventType.CSRF_ATTACK,
                        SecuritySeverity.HIGH,
                        facts,
                        {"reason": result.error},
                        blocked=True,
                    )
                    log.warning("csrf_rejected", path=path, reason=result.error)
                    return JSONResponse(
                        {"error": "CSRF Protection Failed", "message": result.error},
                        status_code=403,
                    )

        # 4. Rate limit
        limit_headers: dict[str, str] = {}
        rl_cfg = settings.rate_limit
        if rl_cfg.enabled:
            limiter: RateLimiter = state.rate_limiter
            name, policy = select_policy(path, rl_cfg.policies)
            rl_result = limiter.check_request(facts, policy, namespace=name)
            limit_headers = rate_limit_headers(
                rl_result, standard=rl_cfg.standard_headers, legacy=rl_cfg.legacy_headers
            )
            if not rl_result.success:
                monitor.log_event(
                    SecurityEventType.RATE_LIMIT_EXCEEDED,
                    SecuritySeverity.MEDIUM,
                    facts,
                    {
                        "rate_limit_type": name,
                        "limit": rl_result.limit,
                        "retry_after_ms": rl_result.retry_after_ms,
                    },
                    blocked=True,
                )
                return JSONResponse(
                    {
                        "error": "Rate limit exceeded",
                        "message": rl_result.error,
                        "retryAfter": math.ceil((rl_result.retry_after_ms or 0) / 1000),
                    },
                    status_code=429,
                    headers=limit_headers,
                )

        # 5. Payload inspection
        if facts.method in _BODY_METHODS and "application/json" in (facts.header("content-type") or ""):
            rejection = await self._inspect_json(request, settings, monitor, facts)
            if rejection is not None:
                return rejection

        response = await call_next(request)
        for header, value in limit_headers.items():
            response.headers[header] = value
        if issued_token is not None:
            response.headers.setdefault("X-CSRF-Token", issued_token)
        return response

    async def _inspect_json(
        self,
        request: Request,
        settings: Settings,
        monitor: SecurityMonitor,
        facts: RequestFacts,
    ) -> Response | None:
        cfg = settings.monitoring
        declared = facts.header("content-length")
        if declared and declared.isdigit() and int(declared) > cfg.max_payload_bytes:
            return _payload_too_large(monitor, facts, int(declared))
        body = await request.body()
        if len(body) > cfg.max_payload_bytes:
            return _payload_too_large(monitor, facts, len(body))

        text = body.decode("utf-8", errors="replace")
        findings = scan_json_payload(text)
        for finding in findings:
            monitor.log_event(
                finding.type,
                SecuritySeverity.HIGH,
                facts,
                {"pattern": finding.pattern, "payload": text[:500]},
                blocked=cfg.strict_validation,
            )
        if findings and cfg.strict_validation:
            return JSONResponse({"error": "Invalid input detected"}, status_code=400)
        return None


async def _csrf_token_from_body(request: Request) -> str | None:
    content_type = request.headers.get("content-type", "")
    if "application/json" not in content_type and "application/x-www-form-urlencoded" not in content_type:
        return None
    body = await request.body()
    if not body:
        return None
    if "application/json" in content_type:
        try:
            data = json.loads(body)
        except ValueError:
            return None
        token = data.get(_CSRF_BODY_FIELD) if isinstance(data, dict) else None
        return token if isinstance(token, str) else None
    values = parse_qs(body.decode("utf-8", errors="replace")).get(_CSRF_BODY_FIELD)
    return values[0] if values else None


def _payload_too_large(monitor: SecurityMonitor, facts: RequestFacts, size: int) -> Response:
    monitor.log_event(
        SecurityEventType.LARGE_PAYLOAD,
        SecuritySeverity.MEDIUM,
        facts,
        {"payload_size": size},
        blocked=True,
    )
    return JSONResponse({"error": "Payload too large"}, status_code=413)


def build_error_handler() -> Any:
    """Return a FastAPI exception handler for GuardError subclasses."""

    async def handler(request: Request, exc: GuardError) -> JSONResponse:
        request_id = getattr(request.state, "request_id", None)

        if isinstance(exc, AuthenticationRequiredError):
            status_code = 401
            code = "authentication_required"
        elif isinstance(exc, AccessDeniedError):
            status_code = 403
            code = "access_denied"
        elif isinstance(exc, CSRFValidationError):
            status_code = 403
            code = "csrf_failed"
        elif isinstance(exc, ConfigurationError):
            status_code = 500
            code = "configuration_error"
        else:
            status_code = 500
            code = "internal_error"

        body = ErrorResponse(
            error=exc.message,
            code=code,
            detail=exc.context or None,
            request_id=request_id,
        )
        return JSONResponse(status_code=status_code, content=body.model_dump())

    return handler
