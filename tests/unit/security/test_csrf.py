"""Unit tests — Stateless CSRF tokens."""

from __future__ import annotations

import pytest

from readiness_guard.config import CSRFConfig
from readiness_guard.exceptions import CSRFValidationError
from readiness_guard.security.csrf import (
    EXPIRED,
    INVALID_FORMAT,
    MISSING,
    SIGNATURE_MISMATCH,
    CSRFTokenService,
    csrf_cookie_header,
    derive_session_id,
    session_id_for,
)
from readiness_guard.security.models import RequestFacts

pytestmark = pytest.mark.unit

SECRET = "unit-test-secret-with-enough-length"
TIMEOUT_MS = 60_000


@pytest.fixture
def service(clock) -> CSRFTokenService:
    return CSRFTokenService(CSRFConfig(secret=SECRET, session_timeout_ms=TIMEOUT_MS), clock=clock)


class TestTokenLifecycle:
    def test_round_trip(self, service: CSRFTokenService) -> None:
        token = service.create_token("session-a")
        assert service.validate_token("session-a", token).valid

    def test_token_shape(self, service: CSRFTokenService, clock) -> None:
        value, timestamp, signature = service.create_token("s").split(":")
        assert len(value) == 64
        assert int(timestamp) == clock.now
        assert len(signature) == 64

    def test_tokens_are_unique(self, service: CSRFTokenService) -> None:
        assert service.create_token("s") != service.create_token("s")

    def test_replay_stays_valid(self, service: CSRFTokenService) -> None:
        token = service.create_token("s")
        assert service.validate_token("s", token).valid
        assert service.validate_token("s", token).valid

    def test_valid_at_exact_timeout(self, service: CSRFTokenService, clock) -> None:
        token = service.create_token("s")
        clock.advance(TIMEOUT_MS)
        assert service.validate_token("s", token).valid

    def test_expired_one_ms_after_timeout(self, service: CSRFTokenService, clock) -> None:
        token = service.create_token("s")
        clock.advance(TIMEOUT_MS + 1)
        result = service.validate_token("s", token)
        assert not result.valid
        assert result.error == EXPIRED


class TestRejections:
    def test_other_session_is_signature_mismatch(self, service: CSRFTokenService) -> None:
        token = service.create_token("session-a")
        assert service.validate_token("session-b", token).error == SIGNATURE_MISMATCH

    def test_tampered_timestamp(self, service: CSRFTokenService) -> None:
        value, timestamp, signature = service.create_token("s").split(":")
        forged = f"{value}:{int(timestamp) + 1}:{signature}"
        assert service.validate_token("s", forged).error == SIGNATURE_MISMATCH

    def test_other_secret(self, service: CSRFTokenService, clock) -> None:
        other = CSRFTokenService(CSRFConfig(secret="another-secret-entirely"), clock=clock)
        assert service.validate_token("s", other.create_token("s")).error == SIGNATURE_MISMATCH

    @pytest.mark.parametrize(
        "token",
        ["abc", "a:b", "a:b:c:d", "abc:notanumber:sig", ":123:sig", "abc:123:"],
    )
    def test_malformed(self, service: CSRFTokenService, token: str) -> None:
        assert service.validate_token("s", token).error == INVALID_FORMAT

    @pytest.mark.parametrize(
        "respell",
        [
            lambda ts: f"{ts[:4]}_{ts[4:]}",
            lambda ts: f"+{ts}",
            lambda ts: f" {ts}",
            lambda ts: f"{ts} ",
            lambda ts: "".join(chr(ord(c) - ord("0") + 0x0660) for c in ts),
        ],
        ids=["underscore", "plus", "leading-space", "trailing-space", "arabic-indic"],
    )
    def test_non_canonical_timestamp_rejected(self, service: CSRFTokenService, respell) -> None:
        value, timestamp, signature = service.create_token("s").split(":")
        forged = f"{value}:{respell(timestamp)}:{signature}"
        assert service.validate_token("s", forged).error == INVALID_FORMAT

    def test_leading_zero_timestamp_rejected(self, service: CSRFTokenService) -> None:
        value, timestamp, signature = service.create_token("s").split(":")
        forged = f"{value}:0{timestamp}:{signature}"
        assert service.validate_token("s", forged).error == SIGNATURE_MISMATCH

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing(self, service: CSRFTokenService, token: str | None) -> None:
        assert service.validate_token("s", token).error == MISSING

    def test_signature_checked_before_expiry(self, service: CSRFTokenService, clock) -> None:
        token = service.create_token("session-a")
        clock.advance(TIMEOUT_MS * 2)
        assert service.validate_token("session-b", token).error == SIGNATURE_MISMATCH

    def test_raise_for_error(self, service: CSRFTokenService) -> None:
        service.validate_token("s", service.create_token("s")).raise_for_error()
        with pytest.raises(CSRFValidationError) as exc_info:
            service.validate_token("s", "garbage").raise_for_error()
        assert exc_info.value.reason == INVALID_FORMAT


class TestSessionBinding:
    def test_cookie_takes_precedence(self) -> None:
        assert derive_session_id("cookie", "1.2.3.4", "ua") == derive_session_id("cookie", "5.6.7.8", "other")
        assert len(derive_session_id("cookie", None, None)) == 32

    def test_falls_back_to_ip_and_user_agent(self) -> None:
        assert derive_session_id(None, "1.2.3.4", "ua") != derive_session_id(None, "1.2.3.4", "other")

    def test_session_id_from_request(self) -> None:
        config = CSRFConfig(secret=SECRET)
        facts = RequestFacts.build(
            "POST",
            "/x",
            {"User-Agent": "browser"},
            cookies={"sb-access-token": "jwt"},
            client_host="1.2.3.4",
        )
        assert session_id_for(facts, config) == derive_session_id("jwt", None, None)


class TestCookieHelpers:
    def test_cookie_header(self) -> None:
        header = csrf_cookie_header("tok", CSRFConfig(secret=SECRET, secure=True, same_site="lax"))
        assert header.startswith("csrf-token=tok; Path=/; HttpOnly; SameSite=Lax")
        assert "Max-Age=86400" in header
        assert header.endswith("Secure")
