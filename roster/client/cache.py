from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional

from cachelib import BaseCache, RedisCache, SimpleCache

from ..config import Settings, get_settings

logger = logging.getLogger(__name__)


class CacheFacade:
    """Keyed response cache over a cachelib backend.

    cachelib cannot enumerate keys, so the facade keeps its own index of the keys
    it has written; pattern invalidation walks that index. Entries have no expiry
    unless ``timeout_seconds`` is positive.
    """

    def __init__(self, backend: Optional[BaseCache] = None, timeout_seconds: int = 0) -> None:
        self.timeout_seconds = timeout_seconds
        self.backend = backend if backend is not None else SimpleCache(default_timeout=timeout_seconds)
        self._keys: set[str] = set()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "CacheFacade":
        settings = settings or get_settings()
        if settings.cache_type == "RedisCache":
            import redis

            client = redis.Redis.from_url(settings.redis_url or "redis://localhost:6379/0")
            backend: BaseCache = RedisCache(
                host=client,
                default_timeout=settings.cache_timeout_seconds,
                key_prefix="roster:",
            )
        else:
            backend = SimpleCache(
                threshold=settings.cache_threshold,
                default_timeout=settings.cache_timeout_seconds,
            )
        return cls(backend, timeout_seconds=settings.cache_timeout_seconds)

    def get(self, key: str) -> Optional[Any]:
        value = self.backend.get(key)
        logger.debug("cache %s %s", "hit" if value is not None else "miss", key)
        return value

    def has(self, key: str) -> bool:
        return bool(self.backend.has(key))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self.backend.set(key, value, timeout=self.timeout_seconds)
            self._keys.add(key)

    def keys(self) -> List[str]:
        with self._lock:
            live = [k for k in self._keys if self.backend.has(k)]
            self._keys = set(live)
        return sorted(live)

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """Drop entries whose key contains ``pattern``; everything when omitted.

        Returns the number of indexed keys removed.
        """
        with self._lock:
            if pattern is None:
                removed = len(self._keys)
                self.backend.clear()
                self._keys.clear()
            else:
                doomed = [k for k in self._keys if pattern in k]
                if doomed:
                    self.backend.delete_many(*doomed)
                self._keys.difference_update(doomed)
                removed = len(doomed)
        logger.debug("cache invalidate pattern=%r removed=%d", pattern, removed)
        return removed
