"""
Recommendation cache with TTL and single-flight computation.

Every computation runs on the cache's own worker pool and every caller,
including the one that started it, waits on the shared flight. A caller that
stops waiting (timeout) leaves the flight running; its result is still
published for the next caller.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Dict, Optional

from .exceptions import CacheComputationError, InvalidConfiguration
from .models import CacheEntry, CacheKey, Recommendation

logger = logging.getLogger(__name__)


class _Flight:
    """One in-progress computation for a key."""

    __slots__ = ("future",)

    def __init__(self):
        self.future: Optional[Future] = None


class RecommendationCache:
    """Thread-safe TTL cache keyed by CacheKey, one computation per key at a time."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_workers: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise InvalidConfiguration("ttl_seconds must be positive", "ttl_seconds", ttl_seconds)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._inflight: Dict[CacheKey, _Flight] = {}
        self._executor: Optional[ThreadPoolExecutor] = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="reco-cache"
        )
        self._hits = 0
        self._misses = 0
        self._computations = 0
        self._failures = 0

    def get(self, key: CacheKey) -> Optional[Recommendation]:
        """Return the published value for ``key`` or None if absent or expired."""
        with self._lock:
            return self._lookup(key)

    def _lookup(self, key: CacheKey) -> Optional[Recommendation]:
        # Caller holds the lock.
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            logger.debug(f"Cache entry expired: {key}")
            return None
        return entry.value

    def get_or_compute(
        self,
        key: CacheKey,
        compute_fn: Callable[[], Recommendation],
        ttl: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> Recommendation:
        """Return the cached value for ``key``, computing it at most once concurrently.

        Raises:
            CacheComputationError: if the computation failed (not cached, retry recomputes)
            TimeoutError: if ``timeout`` elapsed first; the computation keeps running
        """
        ttl = self.ttl_seconds if ttl is None else ttl
        if ttl <= 0:
            raise InvalidConfiguration("ttl must be positive", "ttl", ttl)

        with self._lock:
            value = self._lookup(key)
            if value is not None:
                self._hits += 1
                logger.debug(f"Cache hit: {key}")
                return value

            self._misses += 1
            flight = self._inflight.get(key)
            if flight is None:
                if self._executor is None:
                    raise RuntimeError("RecommendationCache is closed")
                flight = _Flight()
                # Submitted under the lock so the worker cannot publish before registration.
                flight.future = self._executor.submit(self._run, key, flight, compute_fn, ttl)
                self._inflight[key] = flight
                self._computations += 1
                logger.debug(f"Cache miss, computing: {key}")
            else:
                logger.debug(f"Cache miss, joining in-flight computation: {key}")

        try:
            return flight.future.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise TimeoutError(f"Timed out waiting for cache key {key}") from e
        except Exception as e:
            raise CacheComputationError(key, e) from e

    def _run(
        self,
        key: CacheKey,
        flight: _Flight,
        compute_fn: Callable[[], Recommendation],
        ttl: float,
    ) -> Recommendation:
        try:
            value = compute_fn()
        except Exception:
            with self._lock:
                self._failures += 1
                if self._inflight.get(key) is flight:
                    del self._inflight[key]
            logger.warning(f"Computation failed for cache key {key}", exc_info=True)
            raise

        now = self._clock()
        with self._lock:
            # An invalidation during the computation drops the flight; do not publish then.
            if self._inflight.get(key) is flight:
                del self._inflight[key]
                self._entries[key] = CacheEntry(key=key, value=value, created_at=now, expires_at=now + ttl)
        return value

    def invalidate(self, key: CacheKey) -> bool:
        """Drop ``key``; an in-flight computation for it will not be published."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            removed = self._inflight.pop(key, None) is not None or removed
        return removed

    def invalidate_consumer(self, consumer_id: str) -> int:
        """Drop every key belonging to ``consumer_id``. Returns the number dropped."""
        with self._lock:
            keys = [k for k in self._entries if k.consumer_id == consumer_id]
            keys += [k for k in self._inflight if k.consumer_id == consumer_id and k not in keys]
            for key in keys:
                self._entries.pop(key, None)
                self._inflight.pop(key, None)
        return len(keys)

    def purge_expired(self) -> int:
        """Remove all expired entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._inflight.clear()

    def stats(self) -> Dict[str, int]:
        """Counters for maintenance pages and tests."""
        with self._lock:
            return {
                "size": len(self._entries),
                "in_flight": len(self._inflight),
                "hits": self._hits,
                "misses": self._misses,
                "computations": self._computations,
                "failures": self._failures,
            }

    def close(self) -> None:
        """Wait for running computations and release the worker pool."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
        self.clear()
