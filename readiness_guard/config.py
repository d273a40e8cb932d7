"""readiness-guard — Configuration.

Configuration is loaded from (in order of increasing priority):
    1. Built-in defaults (this file)
    2. System config: /etc/readiness-guard/config.yaml
    3. User config:   ~/.readiness/config.yaml
    4. Explicit config file passed to ``Settings.load()``
    5. Environment variables prefixed with READINESS_

All settings are validated once at construction.  Call ``Settings.load()``
once at server startup and inject the instance through FastAPI state.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from readiness_guard.exceptions import ConfigurationError

DEFAULT_CSRF_SECRET = "default-csrf-secret-change-in-production"

_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)
    reload: bool = False
    log_level: Literal["debug", "info", "warning", "error"] = "info"
    environment: Literal["development", "test", "production"] = "development"
    trust_forwarded_headers: bool = Field(
        default=True,
        description="Read the client IP from X-Forwarded-For / X-Real-IP when present.",
    )
    allow_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="CORS allow-list for the web front end.",
    )


class RateLimitPolicy(BaseModel):
    """Fixed-window quota applied to one family of routes."""

    model_config = ConfigDict(frozen=True)

    window_ms: Annotated[int, Field(ge=1)]
    max_requests: Annotated[int, Field(ge=1)]
    message: str = "Too many requests, please try again later."


def default_rate_limit_policies() -> dict[str, RateLimitPolicy]:
    return {
        "api": RateLimitPolicy(
            window_ms=15 * _MINUTE_MS,
            max_requests=100,
            message="Too many API requests, please try again later.",
        ),
        "auth": RateLimitPolicy(
            window_ms=15 * _MINUTE_MS,
            max_requests=50,
            message="Too many authentication attempts, please try again later.",
        ),
        "llm": RateLimitPolicy(
            window_ms=_HOUR_MS,
            max_requests=50,
            message="Too many LLM requests, please try again later.",
        ),
        "upload": RateLimitPolicy(
            window_ms=_HOUR_MS,
            max_requests=20,
            message="Too many upload requests, please try again later.",
        ),
        "password_reset": RateLimitPolicy(
            window_ms=_HOUR_MS,
            max_requests=3,
            message="Too many password reset attempts, please try again later.",
        ),
        "survey": RateLimitPolicy(
            window_ms=5 * _MINUTE_MS,
            max_requests=10,
            message="Too many survey submissions, please try again later.",
        ),
        "general": RateLimitPolicy(
            window_ms=_MINUTE_MS,
            max_requests=200,
            message="Too many requests, please try again later.",
        ),
    }


class RateLimitConfig(BaseModel):
    enabled: bool = True
    policies: dict[str, RateLimitPolicy] = Field(
        default_factory=default_rate_limit_policies,
        description="Named policies. Entries given in config override the built-in ones by name.",
    )
    max_keys: Annotated[int, Field(ge=1, le=10_000_000)] = Field(
        default=100_000,
        description="Maximum tracked keys before least-recently-used entries are evicted.",
    )
    standard_headers: bool = True
    legacy_headers: bool = False

    @field_validator("policies", mode="after")
    @classmethod
    def merge_with_defaults(cls, v: dict[str, RateLimitPolicy]) -> dict[str, RateLimitPolicy]:
        return {**default_rate_limit_policies(), **v}


class CSRFConfig(BaseModel):
    enabled: bool = True
    secret: str = Field(default=DEFAULT_CSRF_SECRET, min_length=16)
    token_length: Annotated[int, Field(ge=16, le=128)] = Field(
        default=32,
        description="Number of random bytes in the token value (hex encoded, so twice as many chars).",
    )
    cookie_name: str = "csrf-token"
    header_name: str = "x-csrf-token"
    session_timeout_ms: Annotated[int, Field(ge=1000)] = 24 * _HOUR_MS
    secure: bool = False
    same_site: Literal["strict", "lax", "none"] = "strict"
    auth_cookie_name: str = Field(
        default="sb-access-token",
        description="Cookie holding the identity provider's session; hashed into the CSRF session id.",
    )
    exempt_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Path prefixes never subject to CSRF validation.",
    )

    @model_validator(mode="after")
    def same_site_none_requires_secure(self) -> "CSRFConfig":
        if self.same_site == "none" and not self.secure:
            raise ValueError("same_site='none' requires secure=true")
        return self


class MonitoringConfig(BaseModel):
    enabled: bool = True
    block_suspicious_ips: bool = True
    max_events: Annotated[int, Field(ge=100, le=1_000_000)] = 10_000
    retention_ms: Annotated[int, Field(ge=_MINUTE_MS)] = 7 * _DAY_MS
    block_window_ms: Annotated[int, Field(ge=1000)] = 15 * _MINUTE_MS
    block_high_severity_threshold: Annotated[int, Field(ge=1)] = Field(
        default=5,
        description="High/critical events from one IP inside the block window that flag it.",
    )
    block_total_threshold: Annotated[int, Field(ge=1)] = Field(
        default=20,
        description="Events of any severity from one IP inside the block window that flag it.",
    )
    block_retry_after_seconds: Annotated[int, Field(ge=1)] = 3600
    max_payload_bytes: Annotated[int, Field(ge=1024)] = 1_048_576
    strict_validation: bool = Field(
        default=False,
        description="Reject JSON bodies matching injection patterns instead of only logging them.",
    )
    event_file: Path | None = Field(
        default=None,
        description="Optional NDJSON file receiving every security event.",
    )
    event_webhook_url: str | None = Field(
        default=None,
        description="Optional HTTP endpoint receiving every security event as a JSON POST.",
    )
    event_webhook_token: str | None = Field(
        default=None,
        description="Bearer token sent with event webhook requests.",
    )
    alert_webhook_url: str | None = Field(
        default=None,
        description="HTTP endpoint notified when a default alert rule fires.",
    )
    webhook_timeout_seconds: Annotated[float, Field(gt=0, le=60)] = 5.0


class ApiRouteRule(BaseModel):
    """Protected API family: authentication always, roles when listed."""

    prefix: str
    required_roles: list[str] = Field(default_factory=list)
    message: str = "Access denied."

    @field_validator("required_roles")
    @classmethod
    def roles_must_be_known(cls, v: list[str]) -> list[str]:
        from readiness_guard.security.catalog import ROLE_HIERARCHY

        unknown = [r for r in v if r not in ROLE_HIERARCHY]
        if unknown:
            raise ValueError(f"Unknown roles: {unknown}")
        return v


def default_api_rules() -> list[ApiRouteRule]:
    admin_roles = ["org_admin", "system_admin"]
    return [
        ApiRouteRule(
            prefix="/api/admin",
            required_roles=admin_roles,
            message="Access denied. Admin privileges required for this API.",
        ),
        ApiRouteRule(
            prefix="/api/export",
            required_roles=admin_roles,
            message="Access denied. Export privileges required.",
        ),
        ApiRouteRule(
            prefix="/api/llm/organizational",
            required_roles=admin_roles,
            message="Access denied. Organization-level LLM access required.",
        ),
        ApiRouteRule(prefix="/api/llm/batch"),
    ]


class RouteGuardConfig(BaseModel):
    login_path: str = "/auth/login"
    admin_prefixes: list[str] = Field(default_factory=lambda: ["/admin", "/system"])
    system_prefixes: list[str] = Field(default_factory=lambda: ["/system"])
    organization_prefix: str = "/organization"
    organization_subpages: list[str] = Field(
        default_factory=lambda: ["surveys", "analytics", "reports"],
        description="Segments after the organization prefix that name a page, not an organization id.",
    )
    admin_roles: list[str] = Field(default_factory=lambda: ["org_admin", "system_admin"])
    system_roles: list[str] = Field(default_factory=lambda: ["system_admin"])
    api_rules: list[ApiRouteRule] = Field(default_factory=default_api_rules)
    route_permissions: dict[str, list[str]] | None = Field(
        default=None,
        description="Route pattern → permission table. None uses the built-in table.",
    )

    @field_validator("admin_roles", "system_roles")
    @classmethod
    def roles_must_be_known(cls, v: list[str]) -> list[str]:
        from readiness_guard.security.catalog import ROLE_HIERARCHY

        unknown = [r for r in v if r not in ROLE_HIERARCHY]
        if unknown:
            raise ValueError(f"Unknown roles: {unknown}")
        return v


def default_csp_directives() -> dict[str, list[str]]:
    return {
        "default-src": ["'self'"],
        "script-src": ["'self'"],
        "style-src": ["'self'", "'unsafe-inline'", "https://fonts.googleapis.com"],
        "font-src": ["'self'", "https://fonts.gstatic.com", "data:"],
        "img-src": ["'self'", "data:", "blob:", "https:"],
        "connect-src": ["'self'", "https://*.supabase.co", "wss://*.supabase.co"],
        "frame-src": ["'self'"],
        "object-src": ["'none'"],
        "base-uri": ["'self'"],
        "form-action": ["'self'"],
        "frame-ancestors": ["'none'"],
        "upgrade-insecure-requests": [],
    }


class HeadersConfig(BaseModel):
    enabled: bool = True
    csp_enabled: bool = True
    csp_report_only: bool = False
    csp_directives: dict[str, list[str]] = Field(default_factory=default_csp_directives)
    hsts_enabled: bool = True
    hsts_max_age: Annotated[int, Field(ge=0)] = 31_536_000
    hsts_include_subdomains: bool = True
    hsts_preload: bool = True
    x_frame_options: Literal["DENY", "SAMEORIGIN"] = "DENY"
    referrer_policy: str = "strict-origin-when-cross-origin"
    permissions_policy: str = "camera=(), microphone=(), geolocation=(), payment=()"


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None
    redact_keys: list[str] = Field(
        default_factory=lambda: ["token", "csrf", "cookie", "secret", "authorization", "password"],
        description="Log fields whose name contains any of these (case-insensitive) are masked.",
    )

    @field_validator("redact_keys")
    @classmethod
    def lowercase_keys(cls, v: list[str]) -> list[str]:
        return [k.lower() for k in v if k]


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="READINESS_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    route_guard: RouteGuardConfig = Field(default_factory=RouteGuardConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    csrf: CSRFConfig = Field(default_factory=CSRFConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    headers: HeadersConfig = Field(default_factory=HeadersConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over YAML values passed in by ``load``.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @field_validator("monitoring", mode="before")
    @classmethod
    def expand_event_file(cls, v: object) -> object:
        if isinstance(v, dict) and isinstance(v.get("event_file"), str):
            v["event_file"] = Path(v["event_file"]).expanduser()
        return v

    @property
    def is_production(self) -> bool:
        return self.server.environment == "production"

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables.

        Files are merged key by key, so a later file overriding
        ``csrf.secure`` keeps the ``csrf.secret`` set by an earlier one.
        Raises ``ConfigurationError`` for unreadable YAML or invalid values.
        """
        import yaml  # lazy import, only needed here

        data: dict[str, Any] = {}

        candidates = [
            Path("/etc/readiness-guard/config.yaml"),
            Path.home() / ".readiness" / "config.yaml",
        ]
        if config_file:
            candidates.append(config_file)

        for path in candidates:
            if path.exists():
                with path.open() as f:
                    try:
                        loaded = yaml.safe_load(f) or {}
                    except yaml.YAMLError as exc:
                        raise ConfigurationError(
                            f"Invalid YAML in {path}", context={"path": str(path), "error": str(exc)}
                        ) from exc
                if not isinstance(loaded, dict):
                    raise ConfigurationError(
                        f"Top level of {path} must be a mapping", context={"path": str(path)}
                    )
                data = _deep_merge(data, loaded)

        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(
                "Invalid configuration", context={"errors": exc.errors(include_url=False)}
            ) from exc


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Environment checks
# ---------------------------------------------------------------------------


def validate_security_environment(settings: Settings) -> list[str]:
    """Return the list of problems that make *settings* unsafe for production.

    Outside production the list is always empty.
    """
    errors: list[str] = []
    if not settings.is_production:
        return errors

    if settings.csrf.secret == DEFAULT_CSRF_SECRET:
        errors.append("CSRF secret is the built-in default")
    elif len(settings.csrf.secret) < 32:
        errors.append("CSRF secret must be at least 32 characters long in production")
    if not settings.csrf.secure:
        errors.append("CSRF cookie must be marked secure in production")
    return errors


def security_health(settings: Settings) -> dict[str, Any]:
    """Summarise the security posture as ``{status, checks}``.

    ``status`` is ``critical`` when any check fails, ``warning`` when any
    check warns, ``healthy`` otherwise.
    """
    env_errors = validate_security_environment(settings)
    checks = [
        {
            "name": "environment",
            "status": "fail" if env_errors else "pass",
            "message": ", ".join(env_errors) or "Production settings look sane",
        },
        {
            "name": "csrf",
            "status": "pass" if settings.csrf.secret != DEFAULT_CSRF_SECRET else "warn",
            "message": (
                "CSRF secret configured"
                if settings.csrf.secret != DEFAULT_CSRF_SECRET
                else "Using default CSRF secret - change in production"
            ),
        },
        {
            "name": "rate_limit",
            "status": "pass" if settings.rate_limit.enabled else "warn",
            "message": "Rate limiting enabled" if settings.rate_limit.enabled else "Rate limiting disabled",
        },
        {
            "name": "csp",
            "status": "pass" if settings.headers.csp_enabled else "warn",
            "message": "CSP enabled" if settings.headers.csp_enabled else "CSP disabled",
        },
    ]
    if any(c["status"] == "fail" for c in checks):
        status = "critical"
    elif any(c["status"] == "warn" for c in checks):
        status = "warning"
    else:
        status = "healthy"
    return {"status": status, "checks": checks}


# Module-level singleton, replaced by ``Settings.load()`` at server startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests."""
    global _settings
    _settings = settings
