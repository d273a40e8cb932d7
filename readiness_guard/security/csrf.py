"""Security layer — CSRF token service.

Tokens are stateless: ``value:timestamp_ms:signature`` where the signature is
``HMAC-SHA256(secret, "{session_id}:{value}:{timestamp_ms}")`` in hex.  The
session id is bound through the signature only, so no server-side token
store exists and a token may be replayed until it expires.

Validation order is format → signature → expiry.  A token exactly
``session_timeout_ms`` old is still valid; one millisecond later it is
expired.

Usage::

    service = CSRFTokenService(settings.csrf)
    token = service.create_token(session_id)
    service.validate_token(session_id, token)   # CSRFValidation(valid=True)
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

from readiness_guard.config import CSRFConfig
from readiness_guard.logging import get_logger
from readiness_guard.security.models import UNKNOWN, Clock, CSRFValidation, RequestFacts, now_ms

log = get_logger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

INVALID_FORMAT = "invalid format"
SIGNATURE_MISMATCH = "signature mismatch"
EXPIRED = "expired"
MISSING = "missing token"


class CSRFTokenService:
    def __init__(self, config: CSRFConfig | None = None, clock: Clock | None = None) -> None:
        self._config = config or CSRFConfig()
        self._clock = clock or now_ms

    @property
    def config(self) -> CSRFConfig:
        return self._config

    def create_token(self, session_id: str) -> str:
        value = secrets.token_hex(self._config.token_length)
        timestamp = self._clock()
        return f"{value}:{timestamp}:{self._sign(session_id, value, timestamp)}"

    def validate_token(self, session_id: str, token: str | None) -> CSRFValidation:
        if not token:
            return CSRFValidation(valid=False, error=MISSING)

        parts = token.split(":")
        if len(parts) != 3 or not parts[0] or not parts[2]:
            return CSRFValidation(valid=False, error=INVALID_FORMAT)

        value, raw_timestamp, signature = parts
        # Only canonical ASCII digits; int() would also accept "1_7", "+17" and " 17".
        if not (raw_timestamp.isascii() and raw_timestamp.isdigit()):
            return CSRFValidation(valid=False, error=INVALID_FORMAT)
        timestamp = int(raw_timestamp)

        expected = self._sign(session_id, value, raw_timestamp)
        if not hmac.compare_digest(signature.encode(), expected.encode()):
            return CSRFValidation(valid=False, error=SIGNATURE_MISMATCH)

        if self._clock() - timestamp > self._config.session_timeout_ms:
            return CSRFValidation(valid=False, error=EXPIRED)

        return CSRFValidation(valid=True)

    def _sign(self, session_id: str, value: str, timestamp: int | str) -> str:
        payload = f"{session_id}:{value}:{timestamp}".encode()
        return hmac.new(self._config.secret.encode(), payload, hashlib.sha256).hexdigest()


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def derive_session_id(auth_cookie: str | None, ip: str | None, user_agent: str | None) -> str:
    """Stable per-session id: hash of the auth cookie, else of ``ip:user_agent``.

    The raw cookie never leaves this function.
    """
    if auth_cookie:
        source = auth_cookie
    else:
        source = f"{ip or UNKNOWN}:{user_agent or UNKNOWN}"
    return hashlib.sha256(source.encode()).hexdigest()[:32]


def session_id_for(facts: RequestFacts, config: CSRFConfig) -> str:
    return derive_session_id(
        facts.cookies.get(config.auth_cookie_name),
        facts.ip,
        facts.user_agent,
    )


def csrf_cookie_header(token: str, config: CSRFConfig) -> str:
    """``Set-Cookie`` value carrying *token*."""
    parts = [
        f"{config.cookie_name}={token}",
        "Path=/",
        "HttpOnly",
        f"SameSite={config.same_site.capitalize()}",
        f"Max-Age={config.session_timeout_ms // 1000}",
    ]
    if config.secure:
        parts.append("Secure")
    return "; ".join(parts)
