"""API layer — FastAPI application factory.

``create_app()`` is the single entry point for building the FastAPI app.
All components are wired here so that tests can override them by calling
``create_app()`` with custom settings or an identity resolver, or by
replacing attributes on ``app.state``.
"""

from __future__ import annotations

import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from readiness_guard import __version__
from readiness_guard.api.identity import HeaderIdentityResolver, IdentityResolver
from readiness_guard.api.middleware import (
    AccessLogMiddleware,
    RequestDefenseMiddleware,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
    build_error_handler,
)
from readiness_guard.api.routes import health, security
from readiness_guard.config import Settings, get_settings, validate_security_environment
from readiness_guard.events.sink import (
    EventSink,
    FanoutEventSink,
    NDJSONEventSink,
    NullEventSink,
    WebhookEventSink,
)
from readiness_guard.exceptions import GuardError
from readiness_guard.logging import configure_logging, get_logger
from readiness_guard.security.csrf import CSRFTokenService
from readiness_guard.security.guard import RouteGuard
from readiness_guard.security.headers import build_security_headers
from readiness_guard.security.monitor import SecurityMonitor
from readiness_guard.security.rate_limiter import InMemoryRateLimitStore, RateLimiter
from readiness_guard.security.routes import route_table_for

log = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    identity_resolver: IdentityResolver | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings:          Optional settings override (used in tests).
        identity_resolver: Turns a request into an IdentityResult.  Defaults
                           to trusting gateway-set ``X-User-*`` headers.

    Returns:
        A fully configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    configure_logging(settings.logging)

    app = FastAPI(
        title="readiness-guard",
        description="Access control and request defense for the AI readiness survey app.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Components live on app.state; middleware and dependencies read them per request.
    app.state.settings = settings
    app.state.identity_resolver = identity_resolver or HeaderIdentityResolver()
    app.state.route_guard = RouteGuard(settings.route_guard)
    app.state.route_table = route_table_for(settings.route_guard.route_permissions)
    app.state.rate_limiter = RateLimiter(InMemoryRateLimitStore(max_keys=settings.rate_limit.max_keys))
    app.state.csrf_service = CSRFTokenService(settings.csrf)
    app.state.security_monitor = SecurityMonitor(
        settings.monitoring,
        sink=_build_event_sink(settings),
        auth_cookie_name=settings.csrf.auth_cookie_name,
    )
    app.state.started_at = time.time()

    # Middleware: the last one added is outermost.
    app.add_middleware(RequestDefenseMiddleware)
    if settings.headers.enabled:
        app.add_middleware(
            SecurityHeadersMiddleware,
            headers=build_security_headers(settings.headers, production=settings.is_production),
        )
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-CSRF-Token", "X-Request-ID"],
    )

    # Exception handlers
    app.add_exception_handler(GuardError, build_error_handler())  # type: ignore[arg-type]

    # Routers
    app.include_router(health.router)
    app.include_router(security.router)

    @app.on_event("startup")
    async def startup() -> None:
        log.info(
            "server_starting",
            version=__version__,
            environment=settings.server.environment,
            rate_limit_enabled=settings.rate_limit.enabled,
            csrf_enabled=settings.csrf.enabled,
        )
        for problem in validate_security_environment(settings):
            log.warning("insecure_configuration", problem=problem)

    @app.on_event("shutdown")
    async def shutdown() -> None:
        log.info("server_stopping")

    return app


def _build_event_sink(settings: Settings) -> EventSink:
    cfg = settings.monitoring
    sinks: list[EventSink] = []
    if cfg.event_file is not None:
        sinks.append(NDJSONEventSink(cfg.event_file))
    if cfg.event_webhook_url:
        sinks.append(
            WebhookEventSink(
                cfg.event_webhook_url,
                token=cfg.event_webhook_token,
                timeout=cfg.webhook_timeout_seconds,
            )
        )
    if not sinks:
        return NullEventSink()
    if len(sinks) == 1:
        return sinks[0]
    return FanoutEventSink(sinks)
