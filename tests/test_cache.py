"""
Unit tests for the versioned caches.

Tests follow the Given/When/Then pattern for clarity.
"""

import errno
import os

import pytest

from token_sweep.lib.cache import BalanceCache, CacheEntry, VersionedCache

WALLET = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"


class TestCacheEntry:
    """Tests for entry freshness."""

    def test_fresh_within_ttl_and_version(self):
        """
        Given an entry written under the current version
        When checking freshness inside and at the TTL boundary
        Then it should be fresh strictly before the TTL elapses
        """
        # Given
        entry = CacheEntry(data=[], stored_at=100.0, version=1)

        # Then
        assert entry.is_fresh(now=159.9, ttl=60, current_version=1)
        assert not entry.is_fresh(now=160.0, ttl=60, current_version=1)

    def test_stale_after_version_bump(self):
        """
        Given an entry from an older version
        When checking freshness
        Then it should be stale even within the TTL
        """
        # Given
        entry = CacheEntry(data=[], stored_at=100.0, version=1)

        # Then
        assert not entry.is_fresh(now=101.0, ttl=60, current_version=2)


class TestVersionedCache:
    """Tests for the in-memory cache."""

    def test_get_returns_fresh_data(self, clock):
        """
        Given a stored value
        When reading it before the TTL elapses
        Then the value should be returned
        """
        # Given
        cache = VersionedCache(ttl=120, clock=clock)
        cache.put(8453, {"a"})

        # When
        clock.advance(119)

        # Then
        assert cache.get(8453) == {"a"}

    def test_expired_entry_is_a_miss_but_peekable(self, clock):
        """
        Given a stored value past its TTL
        When reading it
        Then get should miss while peek still returns the entry
        """
        # Given
        cache = VersionedCache(ttl=120, clock=clock)
        cache.put(8453, {"a"})
        clock.advance(120)

        # Then
        assert cache.get(8453) is None
        assert cache.peek(8453).data == {"a"}

    def test_bump_version_invalidates_everything(self, clock):
        """
        Given several stored values
        When bumping the version
        Then every key should miss
        """
        # Given
        cache = VersionedCache(ttl=120, clock=clock)
        cache.put(1, "x")
        cache.put(2, "y")

        # When
        new_version = cache.bump_version()

        # Then
        assert new_version == 2
        assert cache.get(1) is None
        assert cache.get(2) is None


class TestBalanceCache:
    """Tests for the persistent balance cache."""

    def test_round_trips_tokens_through_disk(self, tmp_path, clock, make_token):
        """
        Given a token list stored for a wallet and chain
        When reading it back with a new cache instance
        Then the same tokens should be returned
        """
        # Given
        tokens = [make_token(symbol="USDC", balance=2**200, decimals=6, usd_value=12.5)]
        BalanceCache(tmp_path, ttl=3600, clock=clock).put(WALLET, 8453, tokens)

        # When
        cached = BalanceCache(tmp_path, ttl=3600, clock=clock).get(WALLET, 8453)

        # Then
        assert cached == tokens

    def test_key_is_case_insensitive_and_chain_scoped(self, tmp_path, clock, make_token):
        """
        Given tokens stored under a checksummed wallet on Base
        When reading with a lowercase wallet, and on another chain
        Then the lowercase lookup should hit and the other chain miss
        """
        # Given
        cache = BalanceCache(tmp_path, ttl=3600, clock=clock)
        cache.put(WALLET, 8453, [make_token()])

        # Then
        assert cache.get(WALLET.lower(), 8453) is not None
        assert cache.get(WALLET, 1) is None

    def test_stores_empty_lists(self, tmp_path, clock):
        """
        Given an empty token list
        When storing and reading it
        Then an empty list (a hit) should be returned, not a miss
        """
        # Given
        cache = BalanceCache(tmp_path, ttl=3600, clock=clock)
        cache.put(WALLET, 1, [])

        # Then
        assert cache.get(WALLET, 1) == []

    def test_expired_entry_misses_but_peek_returns_it(self, tmp_path, clock, make_token):
        """
        Given an entry older than the TTL
        When reading it
        Then get should miss and peek should return the stale entry
        """
        # Given
        cache = BalanceCache(tmp_path, ttl=3600, clock=clock)
        cache.put(WALLET, 1, [make_token()])
        clock.advance(3600)

        # Then
        assert cache.get(WALLET, 1) is None
        assert len(cache.peek(WALLET, 1).data) == 1

    def test_invalidate_all_survives_restart(self, tmp_path, clock, make_token):
        """
        Given a stored entry and an invalidation
        When a new cache instance reads the entry
        Then it should be a miss
        """
        # Given
        cache = BalanceCache(tmp_path, ttl=3600, clock=clock)
        cache.put(WALLET, 1, [make_token()])

        # When
        cache.invalidate_all()
        reopened = BalanceCache(tmp_path, ttl=3600, clock=clock)

        # Then
        assert reopened.version == 2
        assert reopened.get(WALLET, 1) is None

    def test_corrupt_file_is_a_miss(self, tmp_path, clock, make_token):
        """
        Given an entry file that is not valid JSON
        When reading it
        Then it should be treated as a miss
        """
        # Given
        cache = BalanceCache(tmp_path, ttl=3600, clock=clock)
        cache.put(WALLET, 1, [make_token()])
        cache._path_for(WALLET, 1).write_text("{not json", encoding="utf-8")

        # Then
        assert cache.get(WALLET, 1) is None
        assert cache.peek(WALLET, 1) is None

    def test_evicts_oldest_entries_when_storage_exhausted(self, tmp_path, clock, make_token, monkeypatch):
        """
        Given a full cache directory that rejects the first write with ENOSPC
        When storing a new entry
        Then the oldest entries should be evicted and the write retried
        """
        # Given
        cache = BalanceCache(tmp_path, ttl=3600, clock=clock, evict_count=2)
        for chain_id in (1, 10, 56):
            cache.put(WALLET, chain_id, [make_token()])
        os.utime(cache._path_for(WALLET, 1), (1, 1))
        os.utime(cache._path_for(WALLET, 10), (2, 2))

        original_write = cache._write_atomic
        attempts = []

        def flaky_write(path, payload):
            attempts.append(path)
            if len(attempts) == 1:
                raise OSError(errno.ENOSPC, "No space left on device")
            original_write(path, payload)

        monkeypatch.setattr(cache, "_write_atomic", flaky_write)

        # When
        cache.put(WALLET, 8453, [make_token()])

        # Then
        assert len(attempts) == 2
        assert cache.peek(WALLET, 1) is None
        assert cache.peek(WALLET, 10) is None
        assert cache.get(WALLET, 56) is not None
        assert cache.get(WALLET, 8453) is not None

    def test_other_write_failures_are_dropped(self, tmp_path, clock, make_token, monkeypatch):
        """
        Given a write failing with a permission error
        When storing an entry
        Then no exception should escape and nothing should be evicted
        """
        # Given
        cache = BalanceCache(tmp_path, ttl=3600, clock=clock)
        cache.put(WALLET, 1, [make_token()])

        def failing_write(path, payload):
            raise PermissionError(errno.EACCES, "Permission denied")

        monkeypatch.setattr(cache, "_write_atomic", failing_write)

        # When
        cache.put(WALLET, 10, [make_token()])

        # Then
        assert cache.get(WALLET, 1) is not None
        assert cache.get(WALLET, 10) is None


@pytest.mark.parametrize("ttl", [0])
def test_zero_ttl_never_hits(tmp_path, clock, make_token, ttl):
    """
    Given a cache configured with a zero TTL
    When storing and immediately reading
    Then the read should miss
    """
    # Given
    cache = BalanceCache(tmp_path, ttl=ttl, clock=clock)
    cache.put(WALLET, 1, [make_token()])

    # Then
    assert cache.get(WALLET, 1) is None
