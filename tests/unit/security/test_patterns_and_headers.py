"""Unit tests — Request heuristics and security response headers."""

from __future__ import annotations

import pytest

from readiness_guard.config import HeadersConfig
from readiness_guard.security.headers import build_csp, build_hsts, build_security_headers
from readiness_guard.security.models import RequestFacts, SecurityEventType, SecuritySeverity
from readiness_guard.security.patterns import (
    PatternReport,
    detect_suspicious_patterns,
    is_static_asset,
    scan_json_payload,
)

pytestmark = pytest.mark.unit


def _facts(path: str = "/", user_agent: str = "Mozilla/5.0") -> RequestFacts:
    return RequestFacts.build("GET", path, {"User-Agent": user_agent}, client_host="10.0.0.1")


class TestSuspiciousPatterns:
    def test_clean_request(self) -> None:
        report = detect_suspicious_patterns(_facts("/dashboard"))
        assert not report.suspicious

    @pytest.mark.parametrize("ua", ["sqlmap/1.7", "curl/8.0", "Nikto", "Googlebot/2.1"])
    def test_scanner_user_agents(self, ua: str) -> None:
        report = detect_suspicious_patterns(_facts(user_agent=ua))
        assert report.suspicious
        assert report.severity is SecuritySeverity.MEDIUM

    @pytest.mark.parametrize("path", ["/files/../etc/passwd", "/%2e%2e/secret", "/a/..\\b"])
    def test_path_traversal_is_high(self, path: str) -> None:
        report = detect_suspicious_patterns(_facts(path))
        assert report.severity is SecuritySeverity.HIGH
        assert "Path traversal attempt detected" in report.patterns

    @pytest.mark.parametrize("path", ["/wp-admin/setup.php", "/.env", "/.git/config", "/phpMyAdmin"])
    def test_sensitive_paths_flagged(self, path: str) -> None:
        assert detect_suspicious_patterns(_facts(path)).suspicious

    @pytest.mark.parametrize("path", ["/admin", "/config", "/environments", "/.envoy"])
    def test_application_paths_not_flagged(self, path: str) -> None:
        assert not detect_suspicious_patterns(_facts(path)).suspicious

    def test_severity_only_escalates(self) -> None:
        report = PatternReport()
        report.add("a", SecuritySeverity.HIGH)
        report.add("b", SecuritySeverity.MEDIUM)
        assert report.severity is SecuritySeverity.HIGH
        assert report.patterns == ["a", "b"]


class TestStaticAssets:
    @pytest.mark.parametrize("path", ["/_next/static/chunk.js", "/logo.PNG", "/favicon.ico", "/static/app.css"])
    def test_static(self, path: str) -> None:
        assert is_static_asset(path)

    @pytest.mark.parametrize("path", ["/api/surveys", "/admin", "/jsonview"])
    def test_dynamic(self, path: str) -> None:
        assert not is_static_asset(path)


class TestJsonPayloadScan:
    def test_xss_marker(self) -> None:
        findings = scan_json_payload('{"name": "<script>alert(1)</script>"}')
        assert [f.type for f in findings] == [SecurityEventType.XSS_ATTEMPT]

    def test_sql_marker(self) -> None:
        findings = scan_json_payload('{"q": "1 UNION ALL SELECT password FROM users"}')
        assert [f.type for f in findings] == [SecurityEventType.SQL_INJECTION_ATTEMPT]

    def test_one_finding_per_family(self) -> None:
        findings = scan_json_payload('{"a": "javascript:x onerror=y", "b": "insert into t"}')
        assert {f.type for f in findings} == {
            SecurityEventType.XSS_ATTEMPT,
            SecurityEventType.SQL_INJECTION_ATTEMPT,
        }
        assert len(findings) == 2

    def test_clean_and_invalid_bodies(self) -> None:
        assert scan_json_payload('{"answer": "We select vendors carefully"}') == []
        assert scan_json_payload("<script>not json") == []


class TestSecurityHeaders:
    def test_defaults_outside_production(self) -> None:
        headers = build_security_headers(HeadersConfig())
        assert headers["X-Frame-Options"] == "DENY"
        assert headers["X-Content-Type-Options"] == "nosniff"
        assert "Strict-Transport-Security" not in headers
        assert "frame-ancestors 'none'" in headers["Content-Security-Policy"]

    def test_hsts_in_production(self) -> None:
        headers = build_security_headers(HeadersConfig(), production=True)
        assert headers["Strict-Transport-Security"] == "max-age=31536000; includeSubDomains; preload"

    def test_report_only_csp(self) -> None:
        headers = build_security_headers(HeadersConfig(csp_report_only=True))
        assert "Content-Security-Policy" not in headers
        assert "Content-Security-Policy-Report-Only" in headers

    def test_disabled(self) -> None:
        assert build_security_headers(HeadersConfig(enabled=False)) == {}

    def test_csp_serialisation(self) -> None:
        csp = build_csp({"default-src": ["'self'"], "upgrade-insecure-requests": []})
        assert csp == "default-src 'self'; upgrade-insecure-requests"

    def test_hsts_flags(self) -> None:
        config = HeadersConfig(hsts_max_age=60, hsts_include_subdomains=False, hsts_preload=False)
        assert build_hsts(config) == "max-age=60"
