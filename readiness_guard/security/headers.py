"""Security layer — HTTP security response headers."""

from __future__ import annotations

from readiness_guard.config import HeadersConfig


def build_csp(directives: dict[str, list[str]]) -> str:
    """Serialise CSP *directives*; a directive with no sources is emitted bare."""
    parts = []
    for name, sources in directives.items():
        parts.append(f"{name} {' '.join(sources)}" if sources else name)
    return "; ".join(parts)


def build_hsts(config: HeadersConfig) -> str:
    value = f"max-age={config.hsts_max_age}"
    if config.hsts_include_subdomains:
        value += "; includeSubDomains"
    if config.hsts_preload:
        value += "; preload"
    return value


def build_security_headers(config: HeadersConfig, production: bool = False) -> dict[str, str]:
    """Headers to add to every response.  HSTS is only sent in production."""
    if not config.enabled:
        return {}

    headers: dict[str, str] = {}
    if config.csp_enabled:
        name = (
            "Content-Security-Policy-Report-Only"
            if config.csp_report_only
            else "Content-Security-Policy"
        )
        headers[name] = build_csp(config.csp_directives)

    if production and config.hsts_enabled:
        headers["Strict-Transport-Security"] = build_hsts(config)

    headers.update(
        {
            "X-Frame-Options": config.x_frame_options,
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": config.referrer_policy,
            "Permissions-Policy": config.permissions_policy,
            "X-XSS-Protection": "1; mode=block",
            "X-DNS-Prefetch-Control": "off",
            "X-Download-Options": "noopen",
            "X-Permitted-Cross-Domain-Policies": "none",
        }
    )
    return headers
