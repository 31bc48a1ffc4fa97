"""
Caching layer for the polling system.

This module provides caching capabilities to reduce calls to the match data
provider. Cache operations never await, so under asyncio each one runs to
completion without interleaving with other tasks.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from ..origin_client import OriginClient

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]

_MISSING = object()


class CacheEntry:
    """Represents a single cache entry with expiration."""

    __slots__ = ("value", "expires_at")

    def __init__(self, value: Any, expires_at: float) -> None:
        self.value = value
        self.expires_at = expires_at

    def is_expired(self, now: float) -> bool:
        """Check if this cache entry has expired at ``now``."""
        return now >= self.expires_at


class TTLCache:
    """
    In-memory key/value cache with per-entry expiry.

    Expired entries are removed lazily when read, or in bulk through
    ``cleanup_expired``. There is no background sweep. When ``max_entries``
    is set, inserting a new key into a full cache first drops expired
    entries and then the entry closest to expiry.
    """

    def __init__(
        self, max_entries: int | None = None, clock: Clock = time.monotonic
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")

        self._cache: dict[str, CacheEntry] = {}
        self._clock = clock
        self.max_entries = max_entries
        self._stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
            "total_requests": 0,
        }

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a value from the cache.

        Args:
            key: Cache key
            default: Returned when the key is missing or expired. Pass a
                sentinel to tell an absent key from a stored None.

        Returns:
            Cached value or ``default`` if not found/expired
        """
        self._stats["total_requests"] += 1

        entry = self._cache.get(key)
        if entry is not None:
            if not entry.is_expired(self._clock()):
                self._stats["hits"] += 1
                return entry.value

            del self._cache[key]
            self._stats["evictions"] += 1

        self._stats["misses"] += 1
        return default

    def set(self, key: str, value: Any, ttl_seconds: float = 300) -> None:
        """
        Set a value in the cache, replacing any existing entry and its expiry.

        Args:
            key: Cache key
            value: Value to cache
            ttl_seconds: Time to live in seconds (default: 5 minutes)
        """
        if (
            self.max_entries is not None
            and key not in self._cache
            and len(self._cache) >= self.max_entries
        ):
            self._make_room()

        self._cache[key] = CacheEntry(value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> bool:
        """
        Delete a value from the cache.

        Returns:
            True if key was deleted, False if not found
        """
        return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        """Clear all cache entries."""
        self._cache.clear()

    def cleanup_expired(self) -> int:
        """
        Remove expired entries from cache.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired_keys = [
            key for key, entry in self._cache.items() if entry.is_expired(now)
        ]

        for key in expired_keys:
            del self._cache[key]

        self._stats["evictions"] += len(expired_keys)
        return len(expired_keys)

    def stats(self) -> dict[str, Any]:
        """Get the resident entries as ``{"size", "keys"}``."""
        return {"size": len(self._cache), "keys": list(self._cache.keys())}

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total_requests = self._stats["total_requests"]
        hit_rate = (
            (self._stats["hits"] / total_requests * 100) if total_requests > 0 else 0
        )

        return {
            "cache_size": len(self._cache),
            "max_entries": self.max_entries,
            "hit_rate_percent": round(hit_rate, 2),
            "total_requests": total_requests,
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "evictions": self._stats["evictions"],
        }

    def _make_room(self) -> None:
        if self.cleanup_expired() > 0:
            return

        oldest_key = min(self._cache, key=lambda k: self._cache[k].expires_at)
        del self._cache[oldest_key]
        self._stats["evictions"] += 1
        logger.debug("Cache full, evicted entry", key=oldest_key)


class OriginCache:
    """
    Cache for match data provider responses.

    Builds keys per data kind, applies the configured TTL for each kind, and
    lets concurrent misses for the same key share a single provider call.
    The ``get_*`` lookups wrap the matching ``OriginClient`` calls.
    """

    def __init__(
        self,
        base_cache: TTLCache,
        account_ttl: int = 600,
        standing_ttl: int = 600,
        matches_ttl: int = 120,
        match_ttl: int = 3600,
    ):
        self.cache = base_cache
        self.account_ttl = account_ttl
        self.standing_ttl = standing_ttl
        self.matches_ttl = matches_ttl
        self.match_ttl = match_ttl
        self._in_flight: dict[str, asyncio.Future[Any]] = {}

    @staticmethod
    def account_key(name: str, tag: str) -> str:
        return f"account:{name}:{tag}"

    @staticmethod
    def profile_key(region: str, name: str, tag: str) -> str:
        return f"profile:{region}:{name}:{tag}"

    @staticmethod
    def matches_key(
        region: str, name: str, tag: str, mode: str | None = "competitive"
    ) -> str:
        return f"matches:{region}:{name}:{tag}:{mode or 'all'}"

    @staticmethod
    def match_key(region: str, match_id: str) -> str:
        return f"match:{region}:{match_id}"

    async def get_or_fetch(
        self, key: str, ttl_seconds: float, fetch: Callable[[], Awaitable[Any]]
    ) -> Any:
        """
        Return the cached value for ``key`` or fetch and cache it.

        If another task is already fetching ``key``, wait for its result
        instead of calling the provider again. Failures are not cached and
        are raised to every waiter. A None result is returned but not cached.
        """
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        pending = self._in_flight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            value = await fetch()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unawaited failure does not warn on GC
            future.exception()
            raise
        else:
            if value is not None:
                self.cache.set(key, value, ttl_seconds)
            future.set_result(value)
            return value
        finally:
            self._in_flight.pop(key, None)

    async def get_account(
        self, client: OriginClient, name: str, tag: str
    ) -> dict[str, Any]:
        """Get a player account, cache first."""
        return await self.get_or_fetch(
            self.account_key(name, tag),
            self.account_ttl,
            lambda: client.get_account(name, tag),
        )

    async def get_standing(
        self, client: OriginClient, region: str, name: str, tag: str
    ) -> dict[str, Any]:
        """Get a player's rank standing, cache first."""
        return await self.get_or_fetch(
            self.profile_key(region, name, tag),
            self.standing_ttl,
            lambda: client.get_standing(region, name, tag),
        )

    async def get_recent_matches(
        self,
        client: OriginClient,
        region: str,
        name: str,
        tag: str,
        size: int = 5,
        mode: str | None = "competitive",
    ) -> list[dict[str, Any]]:
        """Get a player's recent matches, most recent first, cache first."""
        return await self.get_or_fetch(
            self.matches_key(region, name, tag, mode),
            self.matches_ttl,
            lambda: client.get_recent_matches(region, name, tag, size, mode),
        )

    async def get_match(
        self, client: OriginClient, region: str, match_id: str
    ) -> dict[str, Any]:
        """Get a single match, cache first."""
        return await self.get_or_fetch(
            self.match_key(region, match_id),
            self.match_ttl,
            lambda: client.get_match(region, match_id),
        )

    def in_flight_count(self) -> int:
        """Number of keys currently being fetched."""
        return len(self._in_flight)
