"""In-process cache for catalog records"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

import structlog

logger = structlog.get_logger()


class TTLCache:
    """Small thread-safe cache with per-entry expiry and LRU eviction"""

    def __init__(self, max_items: int = 32, ttl_seconds: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.max_items = max_items
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.cache: Dict[str, Tuple[Any, float]] = {}
        self.access_times: Dict[str, float] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def _evict_oldest(self):
        """Evict the least recently accessed item"""
        if not self.access_times:
            return
        oldest_key = min(self.access_times.items(), key=lambda x: x[1])[0]
        self.cache.pop(oldest_key, None)
        self.access_times.pop(oldest_key, None)

    def get(self, key: str) -> Optional[Any]:
        """Get item from cache, dropping it if expired"""
        if not self.enabled:
            return None

        with self._lock:
            entry = self.cache.get(key)
            now = self.clock()
            if entry is None or entry[1] <= now:
                if entry is not None:
                    self.cache.pop(key, None)
                    self.access_times.pop(key, None)
                self.misses += 1
                return None

            self.access_times[key] = now
            self.hits += 1
            return entry[0]

    def put(self, key: str, value: Any):
        """Put item in cache"""
        if not self.enabled:
            return

        with self._lock:
            while key not in self.cache and len(self.cache) >= self.max_items:
                self._evict_oldest()

            now = self.clock()
            self.cache[key] = (value, now + self.ttl_seconds)
            self.access_times[key] = now

    def invalidate(self, key: Optional[str] = None):
        """Drop one key, or everything when key is None"""
        with self._lock:
            if key is None:
                self.cache.clear()
                self.access_times.clear()
            else:
                self.cache.pop(key, None)
                self.access_times.pop(key, None)
        logger.info("Catalog cache invalidated", key=key or "*")

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        with self._lock:
            return {
                'items': len(self.cache),
                'max_items': self.max_items,
                'ttl_seconds': self.ttl_seconds,
                'hits': self.hits,
                'misses': self.misses,
            }
