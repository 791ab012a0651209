"""
In-memory store for authorization codes and access tokens.

Two independent mappings share the same interface. Each mapping has its own
lock and every operation holds it only for a single dict access, so request
handlers and the expiry sweeper never wait on each other for long. Entries are
immutable StoreEntry models: a reader gets either the old entry or the new one,
never a partial update.

Nothing is persisted. Restarting the process drops every outstanding code and
token.
"""

import threading
from typing import Dict, Iterator, Optional

from models import StoreEntry

AUTHORIZATION_CODES = "authorization_codes"
ACCESS_TOKENS = "access_tokens"

MAPPINGS = (AUTHORIZATION_CODES, ACCESS_TOKENS)


class TokenStore:
    """Concurrency-safe key/value store for credential lifetimes"""

    def __init__(self):
        self._entries: Dict[str, Dict[str, StoreEntry]] = {name: {} for name in MAPPINGS}
        self._locks: Dict[str, threading.Lock] = {name: threading.Lock() for name in MAPPINGS}

    def _mapping(self, mapping: str):
        try:
            return self._entries[mapping], self._locks[mapping]
        except KeyError:
            raise ValueError(f"Unknown store mapping: {mapping}") from None

    def put(self, mapping: str, key: str, entry: StoreEntry) -> None:
        entries, lock = self._mapping(mapping)
        with lock:
            entries[key] = entry

    def get(self, mapping: str, key: str) -> Optional[StoreEntry]:
        entries, lock = self._mapping(mapping)
        with lock:
            return entries.get(key)

    def delete(self, mapping: str, key: str) -> bool:
        """Remove a key. Returns False if it was already gone."""
        entries, lock = self._mapping(mapping)
        with lock:
            return entries.pop(key, None) is not None

    def compare_and_delete(self, mapping: str, key: str, expected: StoreEntry) -> bool:
        """
        Remove ``key`` only if it still maps to ``expected``.

        This is the atomic check-then-delete used for one-time consumption:
        when two callers race on the same entry, exactly one of them gets True.
        """
        entries, lock = self._mapping(mapping)
        with lock:
            if entries.get(key) is not expected:
                return False
            del entries[key]
            return True

    def snapshot(self, mapping: str) -> Dict[str, StoreEntry]:
        """Shallow copy of a mapping, safe to iterate without holding the lock."""
        entries, lock = self._mapping(mapping)
        with lock:
            return dict(entries)

    def count(self, mapping: str) -> int:
        entries, lock = self._mapping(mapping)
        with lock:
            return len(entries)

    def expired(self, mapping: str, now: float) -> Iterator[tuple]:
        """Yield ``(key, entry)`` pairs whose expiry is before ``now``."""
        for key, entry in self.snapshot(mapping).items():
            if entry.is_expired(now):
                yield key, entry
