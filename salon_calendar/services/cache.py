# salon_calendar/services/cache.py
"""
Cache port for fetched appointment lists.

The cache only stores (value, fetched_at); freshness is decided by the caller
with `is_fresh`, so the TTL is not baked into the storage.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional, Protocol

import redis

from salon_calendar.core.config import Settings
from salon_calendar.core.logging import get_logger

logger = get_logger(__name__)

APPOINTMENTS_CACHE_PREFIX = "salon.calendar.appointments."

# Upper bound so abandoned keys do not live forever in Redis
REDIS_KEY_EXPIRY = timedelta(days=1)


@dataclass
class CacheEntry:
    value: Any
    fetched_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "fetched_at": self.fetched_at.isoformat()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(value=data["value"], fetched_at=datetime.fromisoformat(data["fetched_at"]))


class CachePort(Protocol):
    def get(self, key: str) -> Optional[CacheEntry]: ...

    def set(self, key: str, value: Any, fetched_at: Optional[datetime] = None) -> None: ...

    def clear_prefix(self, prefix: str) -> int: ...


def appointments_cache_key(view: str, anchor: date) -> str:
    return f"{APPOINTMENTS_CACHE_PREFIX}{view}.{anchor.isoformat()}"


def is_fresh(entry: Optional[CacheEntry], now: datetime, ttl: timedelta) -> bool:
    return entry is not None and now - entry.fetched_at < ttl


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryCache:
    def __init__(self):
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def set(self, key: str, value: Any, fetched_at: Optional[datetime] = None) -> None:
        self._entries[key] = CacheEntry(value=value, fetched_at=fetched_at or _utcnow())

    def clear_prefix(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        for k in keys:
            del self._entries[k]
        return len(keys)


class RedisCache:
    """JSON entries in Redis. Redis failures degrade to cache misses."""

    def __init__(self, client: redis.Redis):
        self.client = client

    def get(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            logger.error("cache_get_failed", key=key, error=str(e))
            return None
        if not raw:
            return None
        try:
            return CacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("cache_entry_corrupt", key=key, error=str(e))
            return None

    def set(self, key: str, value: Any, fetched_at: Optional[datetime] = None) -> None:
        entry = CacheEntry(value=value, fetched_at=fetched_at or _utcnow())
        try:
            self.client.setex(key, int(REDIS_KEY_EXPIRY.total_seconds()), json.dumps(entry.to_dict()))
        except redis.RedisError as e:
            logger.error("cache_set_failed", key=key, error=str(e))

    def clear_prefix(self, prefix: str) -> int:
        try:
            keys = list(self.client.scan_iter(match=f"{prefix}*"))
            if keys:
                self.client.delete(*keys)
            return len(keys)
        except redis.RedisError as e:
            logger.error("cache_clear_failed", prefix=prefix, error=str(e))
            return 0


def build_cache(cfg: Settings) -> CachePort:
    """Redis when REDIS_URL is configured, otherwise a process-local dict."""
    if not cfg.REDIS_URL:
        return InMemoryCache()
    client = redis.from_url(
        cfg.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=3,
        socket_timeout=2,
        health_check_interval=30,
    )
    logger.info("cache_backend", backend="redis", host=cfg.REDIS_URL.split("@")[-1])
    return RedisCache(client)
