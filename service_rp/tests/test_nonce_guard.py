"""
Unit tests for NonceGuard.
"""

import re
from unittest.mock import patch

import pytest
from starlette.responses import Response

from service_rp.app.nonce import ConsumedNonceRegistry, NonceGuard, nonces_match


class TestNonceGuard:
    """Test cases for NonceGuard."""

    @pytest.fixture
    def guard(self):
        return NonceGuard("test-secret", cookie_name="oidc-nonce", max_age=900)

    def _issue(self, guard):
        response = Response()
        nonce = guard.issue(response)
        cookie_header = response.headers["set-cookie"]
        cookie_value = re.match(r"oidc-nonce=([^;]+);", cookie_header).group(1).strip('"')
        return nonce, cookie_value, cookie_header

    def test_issue_sets_signed_http_only_cookie(self, guard):
        nonce, cookie_value, cookie_header = self._issue(guard)

        assert re.fullmatch(r"[0-9a-f]{32}", nonce)
        assert cookie_value != nonce
        assert cookie_value.startswith(nonce)
        assert "HttpOnly" in cookie_header
        assert "Max-Age=900" in cookie_header
        assert "samesite=lax" in cookie_header.lower()

    def test_nonces_are_unique(self, guard):
        assert len({guard.generate() for _ in range(100)}) == 100

    def test_verify_and_consume_succeeds_exactly_once(self, guard):
        nonce, cookie_value, _ = self._issue(guard)

        assert guard.verify_and_consume(cookie_value, nonce) is True
        assert guard.verify_and_consume(cookie_value, nonce) is False

    def test_mismatch_still_consumes(self, guard):
        nonce, cookie_value, _ = self._issue(guard)

        assert guard.verify_and_consume(cookie_value, "0" * 32) is False
        assert guard.verify_and_consume(cookie_value, nonce) is False

    @pytest.mark.parametrize("presented", ["\u00e9" * 32, "\ud800", "\u00e9"])
    def test_non_ascii_presented_nonce_rejected(self, guard, presented):
        nonce, cookie_value, _ = self._issue(guard)

        assert guard.verify_and_consume(cookie_value, presented) is False
        assert guard.verify_and_consume(cookie_value, nonce) is False

    def test_nonces_match(self):
        assert nonces_match("\u00e9" * 32, "\u00e9" * 32) is True
        assert nonces_match("\u00e9" * 32, "e" * 32) is False
        assert nonces_match("abc", "abc") is True

    def test_consume_returns_nonce_once(self, guard):
        nonce, cookie_value, _ = self._issue(guard)

        assert guard.consume(cookie_value) == nonce
        assert guard.consume(cookie_value) is None

    def test_missing_cookie(self, guard):
        assert guard.consume(None) is None
        assert guard.verify_and_consume("", "anything") is False

    def test_tampered_cookie_rejected(self, guard):
        nonce, cookie_value, _ = self._issue(guard)
        forged_nonce = "f" * 32
        forged = forged_nonce + cookie_value[len(nonce):]

        assert guard.verify_and_consume(forged, forged_nonce) is False
        # the real cookie is untouched by the forgery
        assert guard.verify_and_consume(cookie_value, nonce) is True

    def test_cookie_signed_with_other_secret_rejected(self, guard):
        other = NonceGuard("other-secret", cookie_name="oidc-nonce")
        nonce, cookie_value, _ = self._issue(other)

        assert guard.consume(cookie_value) is None

    def test_expired_cookie_rejected(self, guard):
        nonce, cookie_value, _ = self._issue(guard)

        with patch("itsdangerous.timed.time.time", return_value=10**10):
            assert guard.verify_and_consume(cookie_value, nonce) is False

    def test_clear_deletes_cookie(self, guard):
        response = Response()
        guard.clear(response)
        cookie_header = response.headers["set-cookie"]
        assert cookie_header.startswith("oidc-nonce=")
        assert "Max-Age=0" in cookie_header


class TestConsumedNonceRegistry:
    """Test cases for the consumed-nonce registry."""

    def test_claim_once(self):
        registry = ConsumedNonceRegistry(ttl=60)
        assert registry.claim("n1") is True
        assert registry.claim("n1") is False
        assert registry.claim("n2") is True

    def test_entries_expire(self):
        now = [1000.0]
        registry = ConsumedNonceRegistry(ttl=60, clock=lambda: now[0])
        registry.claim("n1")

        now[0] += 61
        assert registry.claim("n2") is True
        assert len(registry) == 1
