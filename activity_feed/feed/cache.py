"""
Render cache for feed descriptions.

Rendered text is memoized per (feed item, viewer) with a TTL. Every entry
is tagged with its feed item so one ``invalidate`` call evicts the guest
entry and all viewer-scoped entries together.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, Protocol

import redis

from activity_feed.feed.clock import Clock, system_clock
from activity_feed.feed.records import ActivityRecord, key_of
from activity_feed.feed.renderer import TemplateRenderer

logger = logging.getLogger(__name__)

GUEST_VIEWER = "guest"


class CacheBackend(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: int, tags: Iterable[str] = ()) -> None: ...

    def delete(self, key: str) -> bool: ...

    def delete_tag(self, tag: str) -> int: ...


# ── Backends ──────────────────────────────────────────────────────────────────

class MemoryCacheBackend:
    """
    In-process cache with TTL and tag eviction.
    Expiry is checked on read against the injected clock, and expired
    entries are swept from writes at most once per ``sweep_interval``.
    """

    def __init__(self, clock: Clock | None = None, sweep_interval: int = 60) -> None:
        self.clock = clock or system_clock
        self.sweep_interval = timedelta(seconds=sweep_interval)
        self._next_sweep: datetime | None = None
        # key → (value, expires_at)
        self._entries: dict[str, tuple[str, datetime]] = {}
        # tag → keys stored under it
        self._tags: dict[str, set[str]] = {}
        # key → tags it is stored under
        self._key_tags: dict[str, set[str]] = {}

    def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock.now() >= expires_at:
            self._discard(key)
            return None
        return value

    def set(self, key: str, value: str, ttl: int, tags: Iterable[str] = ()) -> None:
        now = self.clock.now()
        if self._next_sweep is None or now >= self._next_sweep:
            self.purge_expired()
            self._next_sweep = now + self.sweep_interval

        self._discard(key)
        self._entries[key] = (value, now + timedelta(seconds=ttl))
        for tag in tags:
            self._tags.setdefault(tag, set()).add(key)
            self._key_tags.setdefault(key, set()).add(tag)

    def delete(self, key: str) -> bool:
        return self._discard(key)

    def delete_tag(self, tag: str) -> int:
        removed = 0
        for key in list(self._tags.pop(tag, ())):
            if self._discard(key):
                removed += 1
        return removed

    def purge_expired(self) -> int:
        """Drop every expired entry and its tag memberships."""
        now = self.clock.now()
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            self._discard(key)
        return len(expired)

    def _discard(self, key: str) -> bool:
        found = self._entries.pop(key, None) is not None
        for tag in self._key_tags.pop(key, ()):
            keys = self._tags.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._tags[tag]
        return found

    def clear(self) -> None:
        self._entries.clear()
        self._tags.clear()
        self._key_tags.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheBackend:
    """
    Shared cache on Redis. Tag membership lives in a Redis set per tag.
    The client must be created with ``decode_responses=True``.
    """

    def __init__(self, client: redis.Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCacheBackend":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    @staticmethod
    def _tag_key(tag: str) -> str:
        return f"tag:{tag}"

    def get(self, key: str) -> str | None:
        try:
            return self.client.get(key)
        except redis.RedisError as exc:
            logger.warning("Redis cache read failed: key=%s: %s", key, exc)
            raise

    def set(self, key: str, value: str, ttl: int, tags: Iterable[str] = ()) -> None:
        try:
            pipe = self.client.pipeline()
            pipe.set(key, value, ex=ttl)
            for tag in tags:
                tag_key = self._tag_key(tag)
                pipe.sadd(tag_key, key)
                # The tag set outlives its longest-lived member; never shorten it.
                pipe.expire(tag_key, ttl, nx=True)
                pipe.expire(tag_key, ttl, gt=True)
            pipe.execute()
        except redis.RedisError as exc:
            logger.warning("Redis cache write failed: key=%s: %s", key, exc)
            raise

    def delete(self, key: str) -> bool:
        try:
            return bool(self.client.delete(key))
        except redis.RedisError as exc:
            logger.warning("Redis cache delete failed: key=%s: %s", key, exc)
            raise

    def delete_tag(self, tag: str) -> int:
        tag_key = self._tag_key(tag)
        try:
            keys = list(self.client.smembers(tag_key))
            removed = self.client.delete(*keys) if keys else 0
            self.client.delete(tag_key)
            return int(removed)
        except redis.RedisError as exc:
            logger.warning("Redis tag eviction failed: tag=%s: %s", tag, exc)
            raise


def create_cache_backend(redis_url: str | None, clock: Clock | None = None) -> CacheBackend:
    """Redis when a URL is configured, otherwise the in-process backend."""
    if redis_url:
        return RedisCacheBackend.from_url(redis_url)
    return MemoryCacheBackend(clock)


# ── Render cache ──────────────────────────────────────────────────────────────

class RenderCache:

    def __init__(
        self,
        renderer: TemplateRenderer,
        backend: CacheBackend,
        ttl: int = 900,
    ) -> None:
        self.renderer = renderer
        self.backend = backend
        self.ttl = self._check_ttl(ttl)

    @staticmethod
    def _check_ttl(ttl: int) -> int:
        if ttl <= 0:
            raise ValueError("Cache TTL must be a positive number of seconds")
        return ttl

    @staticmethod
    def record_tag(record: ActivityRecord) -> str:
        return f"feed_item:{record.id}"

    def cache_key(self, record: ActivityRecord, viewer: Any | None = None) -> str:
        if viewer is None:
            viewer_id = GUEST_VIEWER
        else:
            key = key_of(viewer)
            viewer_id = f"{key.entity_type}:{key.entity_id}"
        return f"feed_item:{record.id}:rendered:{viewer_id}"

    def render_cached(
        self,
        record: ActivityRecord,
        viewer: Any | None = None,
        ttl: int | None = None,
    ) -> str:
        ttl = self.ttl if ttl is None else self._check_ttl(ttl)
        if record.id is None:
            return self.render_uncached(record, viewer)

        key = self.cache_key(record, viewer)
        cached = self.backend.get(key)
        if cached is not None:
            return cached

        rendered = self.render_uncached(record, viewer)
        self.backend.set(key, rendered, ttl, tags=(self.record_tag(record),))
        return rendered

    def render_uncached(self, record: ActivityRecord, viewer: Any | None = None) -> str:
        return self.renderer.render(record, viewer)

    def invalidate(self, record: ActivityRecord) -> int:
        """Evict every cached rendering of ``record``. Returns keys removed."""
        if record.id is None:
            return 0
        removed = int(self.backend.delete(self.cache_key(record)))
        removed += self.backend.delete_tag(self.record_tag(record))
        logger.debug("Invalidated rendered descriptions: feed_item=%s keys=%d", record.id, removed)
        return removed
