"""Security layer — Route → permission table.

Resolves a request path to a ``RouteDecision``.  Matching runs in three
passes and the first pass that finds an entry wins:

    1. exact match              ``/admin/users``
    2. wildcard suffix          ``/reports/*`` matches ``/reports/q3``
    3. API prefix               ``/api/llm`` matches ``/api/llm/analyze``

Within a pass the longest pattern wins.  A path matching no entry resolves to
``RouteDecision.UNPROTECTED``: undeclared routes are open to every caller, so
any route needing protection must be listed.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from readiness_guard.exceptions import ConfigurationError
from readiness_guard.security.catalog import ALL_PERMISSIONS, DEFAULT_ROUTE_PERMISSIONS
from readiness_guard.security.models import RouteDecision

_API_PREFIX = "/api/"


class RouteTable:
    """Immutable route pattern → required permission table.

    A protected entry is satisfied by *any* one of its permissions.
    """

    def __init__(self, entries: Mapping[str, Iterable[str]]) -> None:
        self._exact: dict[str, frozenset[str]] = {}
        self._wildcard: list[tuple[str, frozenset[str]]] = []
        self._api: list[tuple[str, frozenset[str]]] = []

        for pattern, permissions in entries.items():
            perms = frozenset(permissions)
            if pattern.endswith("/*"):
                self._wildcard.append((pattern, perms))
                continue
            self._exact[pattern] = perms
            if pattern.startswith(_API_PREFIX):
                self._api.append((pattern, perms))

        self._wildcard.sort(key=lambda e: len(e[0]), reverse=True)
        self._api.sort(key=lambda e: len(e[0]), reverse=True)

    def resolve(self, path: str) -> RouteDecision:
        path = _normalise(path)

        perms = self._exact.get(path)
        if perms is not None:
            return RouteDecision.protect(perms, path)

        for pattern, perms in self._wildcard:
            base = pattern[:-2]
            if path == base or path.startswith(base + "/"):
                return RouteDecision.protect(perms, pattern)

        for pattern, perms in self._api:
            if path.startswith(pattern + "/"):
                return RouteDecision.protect(perms, pattern)

        return RouteDecision.UNPROTECTED

    def patterns(self) -> list[str]:
        return sorted([*self._exact, *(p for p, _ in self._wildcard)])

    def __len__(self) -> int:
        return len(self._exact) + len(self._wildcard)


def _normalise(path: str) -> str:
    path = path.split("?", 1)[0]
    if len(path) > 1:
        path = path.rstrip("/")
    return path or "/"


DEFAULT_ROUTE_TABLE = RouteTable(DEFAULT_ROUTE_PERMISSIONS)


def route_table_for(entries: Mapping[str, Iterable[str]] | None) -> RouteTable:
    """Build a table from configured entries, falling back to the built-in one.

    Raises ``ConfigurationError`` when an entry names a permission outside
    the catalog, since no role could ever satisfy it.
    """
    if entries is None:
        return DEFAULT_ROUTE_TABLE
    materialised = {pattern: frozenset(permissions) for pattern, permissions in entries.items()}
    unknown = {
        pattern: sorted(permissions - ALL_PERMISSIONS)
        for pattern, permissions in materialised.items()
        if permissions - ALL_PERMISSIONS
    }
    if unknown:
        raise ConfigurationError("Route table references unknown permissions", context={"unknown": unknown})
    return RouteTable(materialised)
