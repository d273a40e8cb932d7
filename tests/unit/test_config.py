"""Unit tests — Settings loading, validation and environment checks."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from readiness_guard.config import (
    DEFAULT_CSRF_SECRET,
    ApiRouteRule,
    CSRFConfig,
    RateLimitConfig,
    RateLimitPolicy,
    RouteGuardConfig,
    Settings,
    _deep_merge,
    get_settings,
    override_settings,
    security_health,
    validate_security_environment,
)
from readiness_guard.exceptions import ConfigurationError

pytestmark = pytest.mark.unit


class TestDefaults:
    def test_default_settings(self) -> None:
        settings = Settings()
        assert settings.server.environment == "development"
        assert settings.csrf.secret == DEFAULT_CSRF_SECRET
        assert settings.monitoring.block_high_severity_threshold == 5
        assert settings.monitoring.block_total_threshold == 20
        assert set(settings.rate_limit.policies) == {
            "api", "auth", "llm", "upload", "password_reset", "survey", "general",
        }

    def test_policies_merge_with_defaults(self) -> None:
        config = RateLimitConfig(policies={"auth": RateLimitPolicy(window_ms=1000, max_requests=1)})
        assert config.policies["auth"].max_requests == 1
        assert config.policies["api"].max_requests == 100


class TestValidation:
    def test_short_secret_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CSRFConfig(secret="short")

    def test_same_site_none_requires_secure(self) -> None:
        with pytest.raises(ValidationError):
            CSRFConfig(same_site="none")
        assert CSRFConfig(same_site="none", secure=True).secure

    def test_unknown_roles_rejected(self) -> None:
        with pytest.raises(ValidationError):
            RouteGuardConfig(admin_roles=["wizard"])
        with pytest.raises(ValidationError):
            ApiRouteRule(prefix="/api/x", required_roles=["wizard"])

    def test_policy_must_allow_at_least_one_request(self) -> None:
        with pytest.raises(ValidationError):
            RateLimitPolicy(window_ms=1000, max_requests=0)


class TestLoading:
    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("READINESS_SERVER__PORT", "9123")
        monkeypatch.setenv("READINESS_CSRF__ENABLED", "false")
        settings = Settings()
        assert settings.server.port == 9123
        assert settings.csrf.enabled is False

    def test_yaml_file(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "server:\n"
            "  environment: production\n"
            "monitoring:\n"
            "  block_total_threshold: 50\n"
            "  event_file: ~/events.ndjson\n"
        )
        settings = Settings.load(config_file=config_file)
        assert settings.is_production
        assert settings.monitoring.block_total_threshold == 50
        assert settings.monitoring.event_file == Path.home() / "events.ndjson"

    def test_env_beats_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("server:\n  port: 7000\n  host: 0.0.0.0\n")
        monkeypatch.setenv("READINESS_SERVER__PORT", "7001")
        settings = Settings.load(config_file=config_file)
        assert settings.server.port == 7001
        assert settings.server.host == "0.0.0.0"

    def test_files_merge_nested_sections(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        home = tmp_path / "home"
        (home / ".readiness").mkdir(parents=True)
        (home / ".readiness" / "config.yaml").write_text(
            "csrf:\n  secret: user-level-secret-0123456789abcdef\n  same_site: lax\n"
        )
        monkeypatch.setenv("HOME", str(home))
        explicit = tmp_path / "override.yaml"
        explicit.write_text("csrf:\n  secure: true\n  same_site: strict\n")

        settings = Settings.load(config_file=explicit)
        assert settings.csrf.secret == "user-level-secret-0123456789abcdef"
        assert settings.csrf.secure is True
        assert settings.csrf.same_site == "strict"

    def test_deep_merge_replaces_non_mappings(self) -> None:
        merged = _deep_merge(
            {"csrf": {"secret": "a", "exempt_paths": ["/health"]}, "server": {"port": 1}},
            {"csrf": {"exempt_paths": ["/hooks"]}, "server": None},
        )
        assert merged == {"csrf": {"secret": "a", "exempt_paths": ["/hooks"]}, "server": None}

    def test_invalid_yaml_is_configuration_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("csrf: [unclosed\n")
        with pytest.raises(ConfigurationError) as exc_info:
            Settings.load(config_file=config_file)
        assert exc_info.value.context["path"] == str(config_file)

    def test_non_mapping_yaml_is_configuration_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- server\n- csrf\n")
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            Settings.load(config_file=config_file)

    def test_invalid_values_are_configuration_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("csrf:\n  secret: short\n")
        with pytest.raises(ConfigurationError) as exc_info:
            Settings.load(config_file=config_file)
        assert exc_info.value.context["errors"][0]["loc"] == ("csrf", "secret")

    def test_override_singleton(self) -> None:
        settings = Settings(server={"port": 8765})
        override_settings(settings)
        assert get_settings() is settings


class TestEnvironmentChecks:
    def test_development_is_never_flagged(self) -> None:
        assert validate_security_environment(Settings()) == []

    def test_production_with_defaults_is_flagged(self) -> None:
        errors = validate_security_environment(Settings(server={"environment": "production"}))
        assert "CSRF secret is the built-in default" in errors
        assert "CSRF cookie must be marked secure in production" in errors

    def test_production_short_secret(self) -> None:
        settings = Settings(
            server={"environment": "production"},
            csrf={"secret": "x" * 20, "secure": True},
        )
        assert validate_security_environment(settings) == [
            "CSRF secret must be at least 32 characters long in production"
        ]

    def test_production_ready(self) -> None:
        settings = Settings(
            server={"environment": "production"},
            csrf={"secret": "s" * 48, "secure": True},
        )
        assert validate_security_environment(settings) == []
        assert security_health(settings)["status"] == "healthy"

    def test_health_status_levels(self) -> None:
        assert security_health(Settings())["status"] == "warning"
        assert security_health(Settings(server={"environment": "production"}))["status"] == "critical"
