"""Shared caches for identity provider adapters.

Both caches are plain instances built at startup and handed to the adapters;
each key has its own ``asyncio.Lock`` so the first caller computes the value
and concurrent callers wait for it and reuse it.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from cachetools import TTLCache
from loguru import logger

T = TypeVar("T")


class _KeyedLocks:
    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks.setdefault(key, asyncio.Lock())
        return lock


class DocumentCache:
    """Time-bounded memo of fetched JSON documents (discovery metadata, JWKS).

    A document is fetched at most once per key per TTL window, no matter how
    many requests need it at the same time.
    """

    def __init__(self, ttl_seconds: int = 3600, maxsize: int = 64) -> None:
        self._cache: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=maxsize, ttl=ttl_seconds)
        self._locks = _KeyedLocks()

    def peek(self, key: str) -> dict[str, Any] | None:
        return self._cache.get(key)

    async def get(
        self, key: str, fetch: Callable[[], Awaitable[dict[str, Any]]]
    ) -> dict[str, Any]:
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        async with self._locks.lock_for(key):
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            logger.debug("Fetching document for {}", key)
            document = await fetch()
            self._cache[key] = document
            return document

    def invalidate(self, key: str) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()


class HostStrategyCache(Generic[T]):
    """Compute-if-absent cache of per-host protocol strategies.

    Strategies are created lazily on the first request for a host and then
    reused for the life of the process.
    """

    def __init__(self) -> None:
        self._strategies: dict[str, T] = {}
        self._locks = _KeyedLocks()

    async def get_or_create(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        strategy = self._strategies.get(key)
        if strategy is not None:
            return strategy

        async with self._locks.lock_for(key):
            strategy = self._strategies.get(key)
            if strategy is None:
                strategy = await factory()
                self._strategies[key] = strategy
                logger.info("Registered authentication strategy {}", key)
            return strategy

    def __contains__(self, key: str) -> bool:
        return key in self._strategies

    def __len__(self) -> int:
        return len(self._strategies)
