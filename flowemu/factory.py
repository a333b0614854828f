"""Constructors for the available chain state stores."""

from __future__ import annotations

from flowemu.redis_store import RedisStore
from flowemu.sqlite_store import IN_MEMORY, SqliteStore
from flowemu.store import Store


def create_default_storage() -> Store:
    """Return an in-memory SQLite store."""
    return SqliteStore(IN_MEMORY)


def new_sqlite_storage(url: str) -> Store:
    """Return a SQLite store at a file, a directory or ``":memory:"``."""
    return SqliteStore(url)


def new_redis_storage(url: str) -> Store:
    """Return a Redis store for a connection URL."""
    return RedisStore(url)