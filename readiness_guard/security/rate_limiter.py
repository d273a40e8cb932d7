"""Security layer — Fixed-window rate limiter.

Counts requests per key inside fixed windows.  The first request for a key
(or the first after its window elapsed) opens a new window with count 1;
later requests increment the count and fail once it passes the policy's
``max_requests``.  Bursts of up to ``2 * max_requests`` across a window
boundary are accepted.

The counter store is injectable.  ``InMemoryRateLimitStore`` keeps entries in
an LRU-ordered dict guarded by a ``threading.Lock``: the create-or-increment
step is atomic per key, so ``2N`` concurrent calls against a limit of ``N``
yield exactly ``N`` successes.

Usage::

    limiter = RateLimiter(InMemoryRateLimitStore())
    result = limiter.check("rate_limit:ip:10.0.0.1", policy)
    if not result.success:
        ...  # 429 with Retry-After
"""

from __future__ import annotations

import math
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Mapping

from readiness_guard.config import RateLimitPolicy
from readiness_guard.logging import get_logger
from readiness_guard.security.models import (
    Clock,
    RateLimitEntry,
    RateLimitResult,
    RequestFacts,
    now_ms,
)

log = get_logger(__name__)

_KEY_PREFIX = "rate_limit"


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class RateLimitStore(ABC):
    """Shared counter store.  ``hit`` must be atomic per key."""

    @abstractmethod
    def hit(self, key: str, window_ms: int, now: int) -> RateLimitEntry:
        """Open a new window or increment the current one; return a snapshot."""

    @abstractmethod
    def reset(self, key: str) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...

    @abstractmethod
    def __len__(self) -> int: ...


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local store with lazy expiry and LRU eviction past *max_keys*."""

    def __init__(self, max_keys: int = 100_000) -> None:
        self._max_keys = max_keys
        self._entries: OrderedDict[str, tuple[RateLimitEntry, int]] = OrderedDict()
        self._lock = threading.Lock()

    def hit(self, key: str, window_ms: int, now: int) -> RateLimitEntry:
        with self._lock:
            current = self._entries.get(key)
            if current is None or now >= current[1]:
                entry = RateLimitEntry(key=key, window_start=now, count=1)
                self._entries[key] = (entry, now + window_ms)
            else:
                entry = current[0]
                entry.count += 1
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_keys:
                evicted, _ = self._entries.popitem(last=False)
                log.debug("rate_limit_key_evicted", key=evicted)
            return RateLimitEntry(key=entry.key, window_start=entry.window_start, count=entry.count)

    def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def prune(self, now: int) -> int:
        """Drop entries whose window has elapsed.  Returns how many were removed."""
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
            for k in expired:
                del self._entries[k]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ---------------------------------------------------------------------------
# Limiter
# ---------------------------------------------------------------------------


class RateLimiter:
    """Fixed-window limiter over a :class:`RateLimitStore`."""

    def __init__(self, store: RateLimitStore | None = None, clock: Clock | None = None) -> None:
        self._store = store or InMemoryRateLimitStore()
        self._clock = clock or now_ms

    @property
    def store(self) -> RateLimitStore:
        return self._store

    def check(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        now = self._clock()
        entry = self._store.hit(key, policy.window_ms, now)
        reset_at = entry.window_start + policy.window_ms

        if entry.count <= policy.max_requests:
            return RateLimitResult(
                success=True,
                limit=policy.max_requests,
                remaining=policy.max_requests - entry.count,
                reset_at=reset_at,
            )

        retry_after_ms = max(1, reset_at - now)
        log.info("rate_limited", key=key, limit=policy.max_requests, retry_after_ms=retry_after_ms)
        return RateLimitResult(
            success=False,
            limit=policy.max_requests,
            remaining=0,
            reset_at=reset_at,
            retry_after_ms=retry_after_ms,
            error=policy.message,
        )

    def check_request(
        self,
        facts: RequestFacts,
        policy: RateLimitPolicy,
        identifier: str | None = None,
        namespace: str | None = None,
    ) -> RateLimitResult:
        """Check *policy* for the caller described by *facts*.

        *namespace* (usually the policy name) keeps separate counters per
        policy for the same caller.
        """
        key = rate_limit_key(facts, identifier)
        if namespace:
            key = f"{namespace}:{key}"
        return self.check(key, policy)

    def reset(self, key: str) -> None:
        self._store.reset(key)


def rate_limit_key(facts: RequestFacts, identifier: str | None = None) -> str:
    """Explicit identifier, else ``x-user-id`` header, else client IP."""
    if identifier:
        return f"{_KEY_PREFIX}:{identifier}"
    user_id = facts.header("x-user-id")
    if user_id:
        return f"{_KEY_PREFIX}:user:{user_id}"
    return f"{_KEY_PREFIX}:ip:{facts.ip}"


# ---------------------------------------------------------------------------
# Policy selection & headers
# ---------------------------------------------------------------------------


def select_policy(
    path: str, policies: Mapping[str, RateLimitPolicy]
) -> tuple[str, RateLimitPolicy]:
    """Pick the policy for *path*.  Falls back to ``general``."""
    if "/auth/reset-password" in path or "/auth/forgot-password" in path:
        name = "password_reset"
    elif "/auth/" in path:
        name = "auth"
    elif "/api/llm/" in path:
        name = "llm"
    elif "/api/export" in path or "/upload" in path:
        name = "upload"
    elif "/survey" in path:
        name = "survey"
    elif path.startswith("/api/"):
        name = "api"
    else:
        name = "general"

    if name not in policies:
        name = "general"
    return name, policies[name]


def rate_limit_headers(
    result: RateLimitResult,
    standard: bool = True,
    legacy: bool = False,
) -> dict[str, str]:
    """Response headers describing *result*.  Reset is in epoch seconds."""
    headers: dict[str, str] = {}
    reset = str(math.ceil(result.reset_at / 1000))
    if standard:
        headers["RateLimit-Limit"] = str(result.limit)
        headers["RateLimit-Remaining"] = str(result.remaining)
        headers["RateLimit-Reset"] = reset
    if legacy:
        headers["X-RateLimit-Limit"] = str(result.limit)
        headers["X-RateLimit-Remaining"] = str(result.remaining)
        headers["X-RateLimit-Reset"] = reset
    if result.retry_after_ms:
        headers["Retry-After"] = str(math.ceil(result.retry_after_ms / 1000))
    return headers
