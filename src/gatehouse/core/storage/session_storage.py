"""Session storage interface and implementations.

A TTL-keyed store for login flow state and user sessions: Redis when it is
configured and reachable, otherwise an in-process dictionary. The backend is
chosen once at startup by ``create_session_storage`` and injected.
"""

from __future__ import annotations

import fnmatch
import json
import time
from abc import ABC, abstractmethod
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from src.gatehouse.runtime.config.config_data import RedisConfig

T = TypeVar("T", bound=BaseModel)


class SessionStorage(ABC):
    """Abstract interface for session storage backends."""

    @abstractmethod
    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        """Store a model under ``key`` for ``ttl_seconds``."""

    @abstractmethod
    async def get(self, key: str, model_class: type[T]) -> T | None:
        """Return the stored model, or None if missing, expired or unreadable."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a key; deleting a missing key is not an error."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """True if the key exists and has not expired."""

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """Drop expired entries and return how many were removed."""

    @abstractmethod
    async def list_keys(self, pattern: str) -> list[str]:
        """List live keys matching a glob pattern such as ``user:*``."""

    async def list_sessions(self, pattern: str, model_class: type[T]) -> list[T]:
        """List live, readable entries matching a pattern."""
        sessions = []
        for key in await self.list_keys(pattern):
            session = await self.get(key, model_class)
            if session is not None:
                sessions.append(session)
        return sessions

    @abstractmethod
    def is_available(self) -> bool:
        """True if the backend is healthy."""

    async def close(self) -> None:
        """Release backend resources."""


class InMemorySessionStorage(SessionStorage):
    """In-memory session storage with TTL support."""

    def __init__(self):
        self._data: dict[str, dict[str, Any]] = {}

    def _live_entry(self, key: str) -> dict[str, Any] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if time.time() > entry["expires_at"]:
            del self._data[key]
            return None
        return entry

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        self._data[key] = {
            "data": json.loads(value.model_dump_json()),
            "expires_at": time.time() + ttl_seconds,
        }

    async def get(self, key: str, model_class: type[T]) -> T | None:
        entry = self._live_entry(key)
        if entry is None:
            return None

        try:
            return model_class.model_validate(entry["data"])
        except ValidationError:
            logger.warning("Dropping unreadable session entry {}", key.split(":", 1)[0])
            del self._data[key]
            return None

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def exists(self, key: str) -> bool:
        return self._live_entry(key) is not None

    async def cleanup_expired(self) -> int:
        now = time.time()
        expired_keys = [key for key, entry in self._data.items() if now > entry["expires_at"]]
        for key in expired_keys:
            del self._data[key]
        return len(expired_keys)

    async def list_keys(self, pattern: str) -> list[str]:
        return [
            key
            for key in list(self._data.keys())
            if fnmatch.fnmatch(key, pattern) and self._live_entry(key) is not None
        ]

    def is_available(self) -> bool:
        """In-memory storage is always available."""
        return True


class RedisSessionStorage(SessionStorage):
    """Redis-based session storage; Redis enforces the TTL."""

    def __init__(self, redis_client):
        self._redis = redis_client
        self._available = True

    async def set(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        try:
            await self._redis.setex(key, ttl_seconds, value.model_dump_json())
            self._available = True
        except Exception as e:
            self._available = False
            raise RuntimeError(f"Redis set failed: {e}") from e

    async def get(self, key: str, model_class: type[T]) -> T | None:
        try:
            data = await self._redis.get(key)
        except Exception as e:
            self._available = False
            raise RuntimeError(f"Redis get failed: {e}") from e

        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")

        try:
            return model_class.model_validate_json(data)
        except ValidationError:
            logger.warning("Dropping unreadable session entry {}", key.split(":", 1)[0])
            await self.delete(key)
            return None

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
            self._available = True
        except Exception as e:
            self._available = False
            raise RuntimeError(f"Redis delete failed: {e}") from e

    async def exists(self, key: str) -> bool:
        try:
            result = await self._redis.exists(key)
            self._available = True
            return bool(result)
        except Exception as e:
            self._available = False
            raise RuntimeError(f"Redis exists failed: {e}") from e

    async def cleanup_expired(self) -> int:
        """Redis handles expiration automatically."""
        return 0

    async def list_keys(self, pattern: str) -> list[str]:
        try:
            keys = []
            cursor = 0
            while True:
                cursor, batch = await self._redis.scan(cursor, match=pattern, count=100)
                keys.extend(k.decode("utf-8") if isinstance(k, bytes) else k for k in batch)
                if cursor == 0:
                    break
            self._available = True
            return keys
        except Exception as e:
            self._available = False
            raise RuntimeError(f"Redis scan failed: {e}") from e

    def is_available(self) -> bool:
        return self._available

    async def ping(self) -> bool:
        try:
            await self._redis.ping()
            self._available = True
            return True
        except Exception:
            self._available = False
            return False

    async def close(self) -> None:
        await self._redis.aclose()


async def create_session_storage(redis_config: RedisConfig) -> SessionStorage:
    """Build the session backend: Redis if enabled and reachable, else in-memory."""
    if not redis_config.enabled or not redis_config.url:
        logger.info("Session storage: in-memory (Redis not configured)")
        return InMemorySessionStorage()

    import redis.asyncio as redis

    redis_client = redis.from_url(
        redis_config.connection_string,
        encoding="utf-8",
        decode_responses=redis_config.decode_responses,
        socket_connect_timeout=redis_config.socket_timeout_seconds,
        socket_timeout=redis_config.socket_timeout_seconds,
    )
    redis_storage = RedisSessionStorage(redis_client)
    if await redis_storage.ping():
        logger.info("Session storage: Redis connected")
        return redis_storage

    logger.warning("Redis unavailable, using in-memory session storage")
    await redis_storage.close()
    return InMemorySessionStorage()
