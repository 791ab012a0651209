"""Unit tests for the credential store (token_store.py)."""

import threading

import pytest
from pydantic import ValidationError

from models import StoreEntry
from token_store import ACCESS_TOKENS, AUTHORIZATION_CODES, TokenStore


def entry(client_id="client-a", expires_at=1000.0):
    return StoreEntry(client_id=client_id, expires_at=expires_at)


class TestTokenStore:

    def test_put_then_get_returns_entry(self, store):
        stored = entry()
        store.put(AUTHORIZATION_CODES, "code-1", stored)

        assert store.get(AUTHORIZATION_CODES, "code-1") == stored

    def test_get_missing_key_returns_none(self, store):
        assert store.get(ACCESS_TOKENS, "nope") is None

    def test_mappings_are_independent(self, store):
        """A key in one mapping must not be visible through the other."""
        store.put(AUTHORIZATION_CODES, "shared-key", entry())

        assert store.get(ACCESS_TOKENS, "shared-key") is None
        assert store.count(AUTHORIZATION_CODES) == 1
        assert store.count(ACCESS_TOKENS) == 0

    def test_delete_reports_whether_key_existed(self, store):
        store.put(ACCESS_TOKENS, "t", entry())

        assert store.delete(ACCESS_TOKENS, "t") is True
        assert store.delete(ACCESS_TOKENS, "t") is False
        assert store.get(ACCESS_TOKENS, "t") is None

    def test_unknown_mapping_raises(self, store):
        with pytest.raises(ValueError, match="Unknown store mapping"):
            store.get("refresh_tokens", "x")

    def test_entries_are_immutable(self):
        stored = entry()
        with pytest.raises(ValidationError):
            stored.client_id = "someone-else"

    # ----- compare_and_delete -----

    def test_compare_and_delete_removes_matching_entry(self, store):
        stored = entry()
        store.put(AUTHORIZATION_CODES, "c", stored)

        assert store.compare_and_delete(AUTHORIZATION_CODES, "c", stored) is True
        assert store.get(AUTHORIZATION_CODES, "c") is None

    def test_compare_and_delete_keeps_replaced_entry(self, store):
        """An entry replaced after it was read must survive a stale delete."""
        stale = entry(expires_at=1.0)
        store.put(AUTHORIZATION_CODES, "c", stale)
        fresh = entry(expires_at=5000.0)
        store.put(AUTHORIZATION_CODES, "c", fresh)

        assert store.compare_and_delete(AUTHORIZATION_CODES, "c", stale) is False
        assert store.get(AUTHORIZATION_CODES, "c") is fresh

    def test_compare_and_delete_on_missing_key(self, store):
        assert store.compare_and_delete(ACCESS_TOKENS, "gone", entry()) is False

    # ----- snapshot / expired -----

    def test_snapshot_is_a_copy(self, store):
        store.put(ACCESS_TOKENS, "t", entry())
        snapshot = store.snapshot(ACCESS_TOKENS)

        store.delete(ACCESS_TOKENS, "t")

        assert "t" in snapshot
        assert store.count(ACCESS_TOKENS) == 0

    def test_expired_yields_only_past_entries(self, store):
        store.put(ACCESS_TOKENS, "old", entry(expires_at=99.0))
        store.put(ACCESS_TOKENS, "edge", entry(expires_at=100.0))
        store.put(ACCESS_TOKENS, "new", entry(expires_at=500.0))

        expired = dict(store.expired(ACCESS_TOKENS, now=100.0))

        assert list(expired) == ["old"]

    # ----- concurrency -----

    def test_concurrent_writers_and_readers(self):
        store = TokenStore()
        errors = []

        def writer(prefix):
            for i in range(500):
                store.put(ACCESS_TOKENS, f"{prefix}-{i}", entry(client_id=prefix))
                if i % 2:
                    store.delete(ACCESS_TOKENS, f"{prefix}-{i}")

        def reader():
            try:
                for _ in range(500):
                    for key, value in store.snapshot(ACCESS_TOKENS).items():
                        assert key.startswith(value.client_id)
            except AssertionError as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(f"w{n}",)) for n in range(4)]
        threads.append(threading.Thread(target=reader))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert not errors
        assert store.count(ACCESS_TOKENS) == 4 * 250
