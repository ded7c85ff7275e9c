"""Volatile cache store.

WHAT:
    The key/value-with-TTL capability the credential manager and the sync
    services read through, plus its Redis implementation.

WHY:
    Cache entries are a disposable projection of the durable store and the
    remote platforms. A Redis outage must cost speed only, so read errors
    degrade to a miss and write errors to a skipped write.

REFERENCES:
    - adsync/services/cache_keys.py (key names and TTL policy)
    - adsync/deps.py::get_cache_store (builds the shared client)
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from redis import Redis, RedisError

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    """Key/value store with per-key expiry. No transactions, no check-and-set."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...


class RedisCacheStore:
    """CacheStore backed by a shared Redis client.

    Usage:
        ```python
        cache = RedisCacheStore(Redis.from_url("redis://localhost:6379/0"))
        cache.set("cred:meta:42", "EAAB...", 3600)
        cache.get("cred:meta:42")
        ```
    """

    def __init__(self, client: Redis):
        self.client = client

    def get(self, key: str) -> Optional[str]:
        try:
            value = self.client.get(key)
        except RedisError as e:
            logger.warning("[CACHE] Read failed for %s, treating as miss: %s", key, e)
            return None

        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            logger.debug("[CACHE] Skipping write for %s (ttl=%s)", key, ttl_seconds)
            return
        try:
            self.client.setex(key, ttl_seconds, value)
        except RedisError as e:
            logger.warning("[CACHE] Write failed for %s, continuing without cache: %s", key, e)
