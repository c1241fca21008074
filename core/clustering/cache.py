"""
In-memory cache of published clustering results.

One entry per poll, bounded in size (least recently accessed entry evicted
first) and expiring after a TTL. The cache is a plain object owned by
whoever needs it (the engine, a Celery worker); there is no module-level
instance. All operations run under one lock, so a sweep never interleaves
with a get or set.
"""

from collections import OrderedDict
from dataclasses import dataclass
import threading
import time
import logging

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 100
DEFAULT_TTL = 300  # seconds
DEFAULT_SWEEP_INTERVAL = 60  # seconds


@dataclass
class CacheEntry:
    data: object
    stored_at: float
    last_accessed: float
    access_count: int = 1


class ClusteringCache:
    """
    LRU + TTL cache keyed by poll id.

    Args:
        max_size: maximum number of polls kept (at least 1)
        ttl: seconds before an entry expires
        clock: zero-argument callable returning seconds (monotonic)
    """

    def __init__(self, max_size=DEFAULT_MAX_SIZE, ttl=DEFAULT_TTL, clock=time.monotonic):
        self.max_size = max(1, max_size)
        self.ttl = ttl
        self.clock = clock
        self.hits = 0
        self.misses = 0
        self._entries = OrderedDict()  # oldest access first
        self._lock = threading.RLock()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def __contains__(self, poll_id):
        with self._lock:
            entry = self._entries.get(poll_id)
            return entry is not None and not self._is_expired(entry, self.clock())

    def _is_expired(self, entry, now):
        return now - entry.stored_at > self.ttl

    def _evict_lru(self):
        if not self._entries:
            return
        poll_id, _ = self._entries.popitem(last=False)
        logger.info(f"Evicted LRU clustering cache entry: {poll_id}")

    def get(self, poll_id):
        """Cached result, or None when missing or expired (expired entries are removed)."""
        with self._lock:
            entry = self._entries.get(poll_id)
            if entry is None:
                self.misses += 1
                return None

            now = self.clock()
            if self._is_expired(entry, now):
                del self._entries[poll_id]
                self.misses += 1
                logger.debug(f"Clustering cache entry expired: {poll_id}")
                return None

            entry.access_count += 1
            entry.last_accessed = now
            self._entries.move_to_end(poll_id)
            self.hits += 1
            return entry.data

    def peek_stale(self, poll_id):
        """
        Cached result even if expired, without touching access stats.

        Used as a fallback when a recomputation fails or times out.
        """
        with self._lock:
            entry = self._entries.get(poll_id)
            return None if entry is None else entry.data

    def set(self, poll_id, data):
        """Store a result; the last write for a poll wins."""
        with self._lock:
            if poll_id not in self._entries and len(self._entries) >= self.max_size:
                self._evict_lru()

            now = self.clock()
            self._entries[poll_id] = CacheEntry(
                data=data, stored_at=now, last_accessed=now
            )
            self._entries.move_to_end(poll_id)

    def invalidate(self, poll_id):
        with self._lock:
            if self._entries.pop(poll_id, None) is not None:
                logger.info(f"Invalidated clustering cache for poll: {poll_id}")

    def clear(self):
        with self._lock:
            self._entries.clear()

    def sweep(self):
        """
        Remove expired entries.

        Returns:
            int: number of entries removed
        """
        with self._lock:
            now = self.clock()
            expired = [
                poll_id
                for poll_id, entry in self._entries.items()
                if self._is_expired(entry, now)
            ]
            for poll_id in expired:
                del self._entries[poll_id]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired clustering cache entries")
        return len(expired)

    def configure(self, max_size=None, ttl=None):
        """
        Change limits; shrinking max_size evicts LRU entries right away.

        max_size is clamped to 1 so the latest result can always be stored.
        """
        with self._lock:
            if ttl is not None:
                self.ttl = ttl
            if max_size is not None:
                self.max_size = max(1, max_size)
                while len(self._entries) > self.max_size:
                    self._evict_lru()

    def get_stats(self):
        with self._lock:
            now = self.clock()
            lookups = self.hits + self.misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl": self.ttl,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": self.hits / lookups if lookups else None,
                "entries": [
                    {
                        "poll_id": poll_id,
                        "age": now - entry.stored_at,
                        "access_count": entry.access_count,
                    }
                    for poll_id, entry in self._entries.items()
                ],
            }


def get_cached_clustering_data(cache, poll_id, fetch_from_source):
    """
    Read-through lookup: memory first, then fetch_from_source().

    Errors from fetch_from_source propagate and nothing is cached. None
    results are not cached either.
    """
    cached = cache.get(poll_id)
    if cached is not None:
        logger.debug(f"Clustering cache HIT: {poll_id}")
        return cached

    logger.debug(f"Clustering cache MISS: {poll_id}, fetching from source")
    data = fetch_from_source()
    if data is not None:
        cache.set(poll_id, data)
    return data


class CacheSweeper:
    """
    Periodically sweeps a cache from a daemon thread until cancelled.

    Usage:
        sweeper = CacheSweeper(cache, interval=60)
        sweeper.start()
        ...
        sweeper.cancel()
    """

    def __init__(self, cache, interval=DEFAULT_SWEEP_INTERVAL):
        self.cache = cache
        self.interval = interval
        self._stopped = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def run_once(self):
        return self.cache.sweep()

    def _run(self):
        while not self._stopped.wait(self.interval):
            self.run_once()

    def start(self):
        if self.running:
            return
        self._stopped.clear()
        self._thread = threading.Thread(
            target=self._run, name="clustering-cache-sweeper", daemon=True
        )
        self._thread.start()
        logger.debug(f"Cache sweeper started (every {self.interval}s)")

    def cancel(self, timeout=None):
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


def build_cache_from_settings():
    """ClusteringCache sized from the CLUSTERING Django settings."""
    from .conf import get_setting

    return ClusteringCache(
        max_size=get_setting("CACHE_MAX_SIZE"),
        ttl=get_setting("CACHE_TTL_SECONDS"),
    )
