"""
Unit tests for AuthorizationCodeIssuer (auth.py).

Codes are single use, expire after ten minutes, and are not burned when the
wrong client presents them.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from auth import AuthorizationCodeIssuer
from token_store import AUTHORIZATION_CODES


class TestIssue:

    def test_code_is_stored_with_ten_minute_expiry(self, code_issuer, store, clock):
        code = code_issuer.issue("client-a")

        stored = store.get(AUTHORIZATION_CODES, code)
        assert stored.client_id == "client-a"
        assert stored.expires_at == clock() + 600

    def test_codes_are_random_and_unique(self, code_issuer):
        codes = {code_issuer.issue("client-a") for _ in range(200)}

        assert len(codes) == 200
        # token_urlsafe(32): 256 bits, 43 url-safe characters
        assert all(len(code) >= 43 for code in codes)
        assert not any("client-a" in code for code in codes)


class TestVerifyAndConsume:

    def test_code_redeems_exactly_once(self, code_issuer):
        code = code_issuer.issue("client-a")

        assert code_issuer.verify_and_consume(code, "client-a") is True
        assert code_issuer.verify_and_consume(code, "client-a") is False

    def test_unknown_code_fails_without_side_effect(self, code_issuer, store):
        code = code_issuer.issue("client-a")

        assert code_issuer.verify_and_consume("not-a-code", "client-a") is False
        assert store.count(AUTHORIZATION_CODES) == 1
        assert code_issuer.verify_and_consume(code, "client-a") is True

    def test_wrong_client_does_not_burn_code(self, code_issuer, store):
        """A mismatched client must not be able to destroy someone else's code."""
        code = code_issuer.issue("client-a")

        assert code_issuer.verify_and_consume(code, "client-b") is False
        assert store.get(AUTHORIZATION_CODES, code) is not None
        assert code_issuer.verify_and_consume(code, "client-a") is True

    def test_expired_code_fails_and_is_removed(self, code_issuer, store, clock):
        code = code_issuer.issue("client-a")
        clock.advance(601)

        assert code_issuer.verify_and_consume(code, "client-a") is False
        assert store.get(AUTHORIZATION_CODES, code) is None
        assert code_issuer.verify_and_consume(code, "client-a") is False

    def test_expired_code_is_removed_even_for_wrong_client(self, code_issuer, store, clock):
        code = code_issuer.issue("client-a")
        clock.advance(601)

        assert code_issuer.verify_and_consume(code, "client-b") is False
        assert store.get(AUTHORIZATION_CODES, code) is None

    def test_code_is_valid_up_to_its_expiry_instant(self, code_issuer, clock):
        code = code_issuer.issue("client-a")
        clock.advance(600)

        assert code_issuer.verify_and_consume(code, "client-a") is True

    def test_custom_lifetime(self, store, clock):
        issuer = AuthorizationCodeIssuer(store, timedelta(seconds=30), clock=clock)
        code = issuer.issue("client-a")
        clock.advance(31)

        assert issuer.verify_and_consume(code, "client-a") is False


class TestConcurrentExchange:

    @pytest.mark.parametrize("attempts", [2, 8])
    def test_only_one_concurrent_redemption_succeeds(self, code_issuer, attempts):
        """Simultaneous exchanges of one code: exactly one wins."""
        for _ in range(50):
            code = code_issuer.issue("client-a")
            barrier = threading.Barrier(attempts)

            def redeem():
                barrier.wait()
                return code_issuer.verify_and_consume(code, "client-a")

            with ThreadPoolExecutor(max_workers=attempts) as pool:
                results = list(pool.map(lambda _: redeem(), range(attempts)))

            assert results.count(True) == 1
