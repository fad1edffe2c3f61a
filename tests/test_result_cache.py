"""Tests for the result cache."""

from datetime import timedelta

from query_health_checks.models.run_outcome import RunOutcome
from query_health_checks.result_cache import ResultCache, statement_digest


def make_outcome() -> RunOutcome:
    return RunOutcome(columns=["id", "name"], rows=[(1, "a"), (2, "b")])


class TestResultCache:
    def test_lookup_within_ttl(self, cache, clock):
        cache.store("main", "SELECT 1", make_outcome(), 60)
        clock.advance(59)

        cached = cache.lookup("main", "SELECT 1")

        assert cached.columns == ["id", "name"]
        assert cached.rows == [(1, "a"), (2, "b")]
        assert cached.error is None
        assert cached.cached_at == clock.now - timedelta(seconds=59)

    def test_lookup_after_expiry_evicts(self, cache, clock):
        cache.store("main", "SELECT 1", make_outcome(), 60)
        clock.advance(60)

        assert cache.lookup("main", "SELECT 1") is None
        assert len(cache) == 0

    def test_missing_entry(self, cache):
        assert cache.lookup("main", "SELECT 1") is None

    def test_keyed_by_data_source(self, cache):
        cache.store("main", "SELECT 1", make_outcome(), 60)

        assert cache.lookup("replica", "SELECT 1") is None

    def test_statement_whitespace_is_normalized(self, cache):
        cache.store("main", "  SELECT 1\n", make_outcome(), 60)

        assert cache.lookup("main", "SELECT 1") is not None
        assert statement_digest("SELECT 1 ") == statement_digest("SELECT 1")

    def test_store_overwrites(self, cache, clock):
        cache.store("main", "SELECT 1", make_outcome(), 60)
        cache.store("main", "SELECT 1", RunOutcome(columns=["id"], rows=[]), 5)

        assert cache.lookup("main", "SELECT 1").rows == []
        clock.advance(5)
        assert cache.lookup("main", "SELECT 1") is None

    def test_snapshot_is_independent_of_caller(self, cache):
        outcome = make_outcome()
        cache.store("main", "SELECT 1", outcome, 60)
        outcome.rows.append((3, "c"))

        assert len(cache.lookup("main", "SELECT 1").rows) == 2
        assert outcome.cached_at is None

    def test_invalidate(self, cache):
        cache.store("main", "SELECT 1", make_outcome(), 60)
        cache.store("main", "SELECT 2", make_outcome(), 60)

        cache.invalidate("main", " SELECT 1")
        cache.invalidate("main", "SELECT 3")

        assert cache.lookup("main", "SELECT 1") is None
        assert cache.lookup("main", "SELECT 2") is not None
        assert len(cache) == 1

    def test_clear(self, cache):
        cache.store("main", "SELECT 1", make_outcome(), 60)
        cache.clear()

        assert cache.lookup("main", "SELECT 1") is None


def test_default_clock():
    cache = ResultCache()
    cache.store("main", "SELECT 1", make_outcome(), 60)

    assert cache.lookup("main", "SELECT 1") is not None
