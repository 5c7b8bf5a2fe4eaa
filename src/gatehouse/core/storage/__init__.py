"""Session storage abstractions."""

from .session_storage import (
    InMemorySessionStorage,
    RedisSessionStorage,
    SessionStorage,
    create_session_storage,
)

__all__ = [
    "SessionStorage",
    "InMemorySessionStorage",
    "RedisSessionStorage",
    "create_session_storage",
]
