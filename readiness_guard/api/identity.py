"""API layer — Identity resolution.

The hosted identity provider authenticates users; this package only consumes
the outcome.  An ``IdentityResolver`` is an async callable turning a request
into an ``IdentityResult``.  It is awaited once per request by the defense
middleware and the result is cached on ``request.state.identity``.

Built-in resolvers:
  - HeaderIdentityResolver — trusts ``X-User-ID`` / ``X-User-Role`` /
    ``X-User-Org-ID`` set by an upstream gateway that already verified the
    session.  Only deploy it behind such a gateway.
  - StaticIdentityResolver — fixed result, for tests and demos.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import Request

from readiness_guard.logging import get_logger
from readiness_guard.security.models import AuthenticatedPrincipal, IdentityResult

log = get_logger(__name__)

IdentityResolver = Callable[[Request], Awaitable[IdentityResult]]

HEADER_USER_ID = "X-User-ID"
HEADER_USER_ROLE = "X-User-Role"
HEADER_USER_ORG_ID = "X-User-Org-ID"
HEADER_USER_EMAIL = "X-User-Email"

DEFAULT_ROLE = "user"


class HeaderIdentityResolver:
    async def __call__(self, request: Request) -> IdentityResult:
        user_id = request.headers.get(HEADER_USER_ID)
        if not user_id:
            return IdentityResult.anonymous("No valid session found")
        return IdentityResult.of(
            AuthenticatedPrincipal(
                id=user_id,
                role=request.headers.get(HEADER_USER_ROLE) or DEFAULT_ROLE,
                organization_id=request.headers.get(HEADER_USER_ORG_ID) or None,
                email=request.headers.get(HEADER_USER_EMAIL) or None,
            )
        )


class StaticIdentityResolver:
    def __init__(self, principal: AuthenticatedPrincipal | None = None, error: str | None = None) -> None:
        if principal is None:
            self._result = IdentityResult.anonymous(error or "No valid session found")
        else:
            self._result = IdentityResult.of(principal)

    async def __call__(self, request: Request) -> IdentityResult:
        return self._result


async def resolve_identity(request: Request) -> IdentityResult:
    """Return the cached identity, resolving it on first use."""
    cached = getattr(request.state, "identity", None)
    if cached is not None:
        return cached  # type: ignore[no-any-return]
    resolver: IdentityResolver = request.app.state.identity_resolver
    try:
        identity = await resolver(request)
    except Exception as exc:
        log.error("identity_resolution_failed", error=str(exc))
        identity = IdentityResult.anonymous("Authentication failed")
    request.state.identity = identity
    return identity
