"""In-process TTL cache with per-key single-flight computation and prefix invalidation."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class TTLCache:
    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._expires: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # bumped by invalidate_prefix/clear; results computed across a bump are not stored
        self._invalidations: dict[str, int] = {}
        self._cleared = 0

    def get(self, key: str) -> Any | None:
        expires = self._expires.get(key)
        if expires is None or time.time() >= expires:
            return None
        return self._values.get(key)

    def peek(self, key: str) -> Any | None:
        """Return the stored value even if it has expired."""
        return self._values.get(key)

    def _generation(self, key: str) -> tuple[int, int]:
        bumps = sum(n for prefix, n in self._invalidations.items() if key.startswith(prefix))
        return self._cleared, bumps

    def set(self, key: str, value: Any, ttl: float) -> None:
        self._values[key] = value
        self._expires[key] = time.time() + ttl

    async def get_or_compute(
        self,
        key: str,
        ttl: float,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        value = self.get(key)
        if value is not None:
            logger.debug("Cache hit: %s", key)
            return value

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            # another waiter may have filled the slot while we were queued
            value = self.get(key)
            if value is not None:
                logger.debug("Cache hit after wait: %s", key)
                return value

            logger.info("Cache miss: %s", key)
            generation = self._generation(key)
            value = await compute()
            if self._generation(key) == generation:
                self.set(key, value, ttl)
            else:
                logger.info("Discarding result for %s invalidated during computation", key)
            return value

    def invalidate_prefix(self, prefix: str) -> int:
        self._invalidations[prefix] = self._invalidations.get(prefix, 0) + 1
        keys = [k for k in self._values if k.startswith(prefix)]
        for key in keys:
            self._values.pop(key, None)
            self._expires.pop(key, None)
        if keys:
            logger.info("Invalidated %d cache entries with prefix '%s'", len(keys), prefix)
        return len(keys)

    def clear(self) -> None:
        self._values.clear()
        self._expires.clear()
        self._locks.clear()
        self._cleared += 1


cache = TTLCache()
