"""readiness-guard — Access control and request defense for the AI readiness survey app.

Answers authorization questions for an already-authenticated principal and
protects privileged operations against abuse.

Architecture layers (bottom to top):
    1. Ambient   — Settings, structured logging, exception hierarchy
    2. Security  — Permission catalog, RBAC evaluator, route guard, rate
                   limiter, CSRF tokens, security monitor, security headers
    3. Events    — Pluggable export of security events (NDJSON, webhook, fanout)
    4. API       — FastAPI middleware stack and operator endpoints
    5. CLI       — Operator tooling (serve, inspect RBAC, issue/verify tokens)
"""

__version__ = "0.1.0"
__author__ = "readiness-guard Contributors"
__license__ = "Apache-2.0"

from readiness_guard.security.models import AuthenticatedPrincipal, IdentityResult

__all__ = [
    "__version__",
    "AuthenticatedPrincipal",
    "IdentityResult",
]
