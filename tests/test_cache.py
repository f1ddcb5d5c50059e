"""
Tests for the TTL recommendation cache and its single-flight guarantee.
"""

import threading
import time

import pytest

from recommendation_service.cache import RecommendationCache
from recommendation_service.exceptions import CacheComputationError, InvalidConfiguration
from recommendation_service.models import CacheKey, ContentItem, Recommendation, ScoredCandidate


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _key(consumer="u1", fingerprint="f" * 40):
    return CacheKey(consumer_id=consumer, fingerprint=fingerprint)


def _recommendation(*ids):
    return Recommendation.from_candidates(
        [ScoredCandidate(item=ContentItem(id=item_id, category_id="1"), score=0.5) for item_id in ids]
    )


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.005)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    cache = RecommendationCache(ttl_seconds=10, max_workers=2, clock=clock)
    yield cache
    cache.close()


class TestRecommendationCache:
    """Hits, misses and expiry."""

    def test_miss_computes_then_hit_serves(self, cache):
        calls = []

        def compute():
            calls.append(1)
            return _recommendation("a")

        first = cache.get_or_compute(_key(), compute)
        second = cache.get_or_compute(_key(), compute)

        assert first is second
        assert len(calls) == 1
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1

    def test_entry_expires_after_ttl(self, cache, clock):
        calls = []

        def compute():
            calls.append(1)
            return _recommendation(str(len(calls)))

        cache.get_or_compute(_key(), compute)
        clock.advance(9.9)
        assert cache.get(_key()) is not None

        clock.advance(0.1)
        assert cache.get(_key()) is None
        assert cache.get_or_compute(_key(), compute).item_ids == ["2"]
        assert len(calls) == 2

    def test_per_call_ttl(self, cache, clock):
        cache.get_or_compute(_key(), lambda: _recommendation("a"), ttl=1)
        clock.advance(1)
        assert cache.get(_key()) is None

    def test_non_positive_ttl_is_invalid(self, cache):
        with pytest.raises(InvalidConfiguration):
            cache.get_or_compute(_key(), lambda: _recommendation("a"), ttl=0)
        with pytest.raises(InvalidConfiguration):
            RecommendationCache(ttl_seconds=0)

    def test_keys_are_independent(self, cache):
        cache.get_or_compute(_key("u1"), lambda: _recommendation("a"))
        other = cache.get_or_compute(_key("u2"), lambda: _recommendation("b"))
        assert other.item_ids == ["b"]

    def test_purge_expired(self, cache, clock):
        cache.get_or_compute(_key("u1"), lambda: _recommendation("a"), ttl=5)
        cache.get_or_compute(_key("u2"), lambda: _recommendation("b"), ttl=20)
        clock.advance(6)
        assert cache.purge_expired() == 1
        assert cache.stats()["size"] == 1


class TestSingleFlight:
    """Concurrent callers share one computation."""

    def test_concurrent_callers_compute_once(self, cache):
        release = threading.Event()
        calls = []
        results = []

        def slow_compute():
            calls.append(1)
            release.wait(5)
            return _recommendation("a")

        def worker():
            results.append(cache.get_or_compute(_key(), slow_compute))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        _wait_for(lambda: cache.stats()["misses"] == 4)
        release.set()
        for thread in threads:
            thread.join(5)

        assert len(calls) == 1
        assert len(results) == 4
        assert all(result is results[0] for result in results)

    def test_failure_reaches_every_waiter_and_is_not_cached(self, cache):
        release = threading.Event()
        errors = []

        def failing_compute():
            release.wait(5)
            raise ValueError("store unavailable")

        def worker():
            try:
                cache.get_or_compute(_key(), failing_compute)
            except CacheComputationError as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for thread in threads:
            thread.start()
        _wait_for(lambda: cache.stats()["misses"] == 2)
        release.set()
        for thread in threads:
            thread.join(5)

        assert len(errors) == 2
        assert all(isinstance(e.cause, ValueError) for e in errors)
        assert cache.stats()["failures"] == 1
        assert cache.get(_key()) is None

        # A retry recomputes.
        assert cache.get_or_compute(_key(), lambda: _recommendation("b")).item_ids == ["b"]

    def test_abandoned_wait_still_publishes(self, cache):
        release = threading.Event()
        calls = []

        def slow_compute():
            calls.append(1)
            release.wait(5)
            return _recommendation("a")

        with pytest.raises(TimeoutError):
            cache.get_or_compute(_key(), slow_compute, timeout=0.05)

        release.set()
        result = cache.get_or_compute(_key(), slow_compute)
        assert result.item_ids == ["a"]
        assert len(calls) == 1
        _wait_for(lambda: cache.get(_key()) is not None)

    def test_invalidation_during_flight_discards_result(self, cache):
        release = threading.Event()

        def slow_compute():
            release.wait(5)
            return _recommendation("stale")

        with pytest.raises(TimeoutError):
            cache.get_or_compute(_key(), slow_compute, timeout=0.05)
        assert cache.invalidate(_key()) is True

        release.set()
        _wait_for(lambda: cache.stats()["in_flight"] == 0)
        time.sleep(0.05)
        assert cache.get(_key()) is None


class TestInvalidation:
    """Explicit removal."""

    def test_invalidate_consumer(self, cache):
        cache.get_or_compute(_key("u1", "a" * 40), lambda: _recommendation("a"))
        cache.get_or_compute(_key("u1", "b" * 40), lambda: _recommendation("b"))
        cache.get_or_compute(_key("u2", "a" * 40), lambda: _recommendation("c"))

        assert cache.invalidate_consumer("u1") == 2
        assert cache.get(_key("u2", "a" * 40)) is not None
        assert cache.stats()["size"] == 1

    def test_clear(self, cache):
        cache.get_or_compute(_key(), lambda: _recommendation("a"))
        cache.clear()
        assert cache.get(_key()) is None

    def test_closed_cache_refuses_work(self, clock):
        cache = RecommendationCache(ttl_seconds=10, clock=clock)
        cache.close()
        with pytest.raises(RuntimeError):
            cache.get_or_compute(_key(), lambda: _recommendation("a"))
