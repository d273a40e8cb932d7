"""Security layer — Heuristic request pattern detection.

Cheap regex heuristics run on every non-static request:
  - scanner / automation user agents             → MEDIUM
  - path traversal sequences (``../``, ``..\\``)  → HIGH
  - requests for well-known sensitive paths      → MEDIUM
  - XSS / SQL injection markers in JSON bodies   → HIGH (reported per family)

These feed the security monitor; they never block on their own except where
the middleware's strict mode says so.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from urllib.parse import unquote

from readiness_guard.security.models import RequestFacts, SecurityEventType, SecuritySeverity

_SUSPICIOUS_USER_AGENTS = re.compile(r"curl|wget|scanner|bot|crawler|sqlmap|nmap|nikto", re.I)

_PATH_TRAVERSAL = ("../", "..\\")

_SENSITIVE_PATHS = (
    "/phpmyadmin",
    "/wp-admin",
    "/wp-login.php",
    "/.env",
    "/.git",
    "/login.php",
)

_STATIC_PREFIXES = ("/_next/static", "/_next/image", "/static/", "/favicon.ico", "/robots.txt", "/sitemap.xml")
_STATIC_SUFFIX = re.compile(r"\.(css|js|png|jpg|jpeg|gif|svg|ico|woff|woff2|ttf|eot)$", re.I)

_XSS_PATTERNS = tuple(
    re.compile(p, re.I) for p in (r"<script", r"javascript:", r"onload=", r"onerror=", r"eval\(")
)
_SQLI_PATTERNS = tuple(re.compile(p, re.I | re.S) for p in (r"union.*select", r"insert.*into"))

_SEVERITY_ORDER = [
    SecuritySeverity.LOW,
    SecuritySeverity.MEDIUM,
    SecuritySeverity.HIGH,
    SecuritySeverity.CRITICAL,
]


@dataclass
class PatternReport:
    patterns: list[str] = field(default_factory=list)
    severity: SecuritySeverity = SecuritySeverity.LOW

    @property
    def suspicious(self) -> bool:
        return bool(self.patterns)

    def add(self, description: str, severity: SecuritySeverity) -> None:
        self.patterns.append(description)
        if _SEVERITY_ORDER.index(severity) > _SEVERITY_ORDER.index(self.severity):
            self.severity = severity


@dataclass(frozen=True)
class InjectionFinding:
    type: SecurityEventType
    pattern: str


def is_static_asset(path: str) -> bool:
    return path.startswith(_STATIC_PREFIXES) or bool(_STATIC_SUFFIX.search(path))


def detect_suspicious_patterns(facts: RequestFacts) -> PatternReport:
    report = PatternReport()

    user_agent = facts.headers.get("user-agent", "")
    if user_agent and _SUSPICIOUS_USER_AGENTS.search(user_agent):
        report.add(f"Suspicious user agent: {user_agent}", SecuritySeverity.MEDIUM)

    path = unquote(facts.path)
    if any(seq in path for seq in _PATH_TRAVERSAL):
        report.add("Path traversal attempt detected", SecuritySeverity.HIGH)

    lowered = path.lower()
    for sensitive in _SENSITIVE_PATHS:
        if lowered == sensitive or lowered.startswith(sensitive + "/") or lowered.startswith(sensitive + "."):
            report.add(f"Access to sensitive path: {sensitive}", SecuritySeverity.MEDIUM)

    return report


def scan_json_payload(body: str) -> list[InjectionFinding]:
    """Return one finding per attack family present in a JSON body.

    Bodies that are not valid JSON are left to the application.
    """
    try:
        normalised = json.dumps(json.loads(body))
    except ValueError:
        return []

    findings: list[InjectionFinding] = []
    for event_type, patterns in (
        (SecurityEventType.XSS_ATTEMPT, _XSS_PATTERNS),
        (SecurityEventType.SQL_INJECTION_ATTEMPT, _SQLI_PATTERNS),
    ):
        for pattern in patterns:
            if pattern.search(normalised):
                findings.append(InjectionFinding(type=event_type, pattern=pattern.pattern))
                break
    return findings
