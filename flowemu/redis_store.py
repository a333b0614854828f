"""A chain state store kept in Redis."""

from __future__ import annotations

from typing import Any, Optional

import redis

from flowemu.errors import EntityNotFoundError
from flowemu.store import DefaultKeyGenerator, DefaultStore


def _store_key(store: str, key: bytes) -> str:
    return f"{store}_{key.hex()}"


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, (bytes, bytearray)) else str(value)


class RedisStore(DefaultStore):
    """Stores hex-encoded values in Redis; versioned values live in sorted sets."""

    def __init__(self, url: str, client: Optional[Any] = None) -> None:
        super().__init__(DefaultKeyGenerator())
        self.url = url
        self.client = client if client is not None else redis.Redis.from_url(url)

    def get_bytes(self, store: str, key: bytes) -> bytes:
        value = self.client.get(_store_key(store, key))
        if value is None:
            raise EntityNotFoundError()
        return bytes.fromhex(_text(value))

    def set_bytes(self, store: str, key: bytes, value: bytes) -> None:
        self.client.set(_store_key(store, key), bytes(value).hex())

    def set_bytes_with_version(self, store: str, key: bytes, value: bytes, version: int) -> None:
        self.client.zadd(_store_key(store, key), {bytes(value).hex(): float(version)})

    def get_bytes_at_version(self, store: str, key: bytes, version: int) -> bytes:
        members = self.client.zrevrangebyscore(
            _store_key(store, key), max=str(version), min="-inf", start=0, num=1
        )
        if not members:
            raise EntityNotFoundError()
        return bytes.fromhex(_text(members[0]))