"""Redis-backed cache for public case study pages.

Cache failures never fail a request: a broken or unreachable Redis degrades to a
miss on read and a no-op on write, with a warning in the log.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass
from typing import Any

from casevia.core.redis_client import redis_delete, redis_get, redis_set
from casevia.core.settings import get_settings

logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Cache performance statistics."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0

    @property
    def hit_ratio(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class CacheManager:
    """JSON cache with a key prefix and hit/miss accounting."""

    def __init__(self, prefix: str = "casevia_cache:"):
        self.prefix = prefix
        self._stats = CacheStats()
        self._stats_lock = asyncio.Lock()

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    @property
    def enabled(self) -> bool:
        return get_settings().cache_enabled

    async def get(self, key: str) -> Any | None:
        if not self.enabled:
            return None
        cache_key = self._make_key(key)
        try:
            value = await redis_get(cache_key)
        except Exception as e:
            logger.warning(f"Error getting cache key {cache_key}: {e}")
            value = None

        async with self._stats_lock:
            if value is None:
                self._stats.misses += 1
                return None
            self._stats.hits += 1
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        if not self.enabled:
            return False
        cache_key = self._make_key(key)
        ttl = ttl or get_settings().redis_cache_ttl
        try:
            stored = await redis_set(cache_key, json.dumps(value, default=str), ttl=ttl)
        except Exception as e:
            logger.warning(f"Error setting cache key {cache_key}: {e}")
            return False
        if stored:
            async with self._stats_lock:
                self._stats.sets += 1
        return stored

    async def delete(self, key: str) -> bool:
        if not self.enabled:
            return False
        cache_key = self._make_key(key)
        try:
            removed = await redis_delete(cache_key)
        except Exception as e:
            logger.warning(f"Error deleting cache key {cache_key}: {e}")
            return False
        if removed:
            async with self._stats_lock:
                self._stats.deletes += 1
        return removed > 0

    async def get_stats(self) -> dict[str, Any]:
        async with self._stats_lock:
            stats = asdict(self._stats)
            stats["hit_ratio"] = round(self._stats.hit_ratio * 100, 2)
            return stats


public_page_cache = CacheManager(prefix="public_case_study:")
