"""In-memory TTL cache for deduplicating scrape and search calls.

Entries expire lazily: a read that finds a stale entry deletes it and
reports a miss. There is no background sweep. Instances are constructed
explicitly and passed to the adapters that use them, so tests and
deployments can hold independent cache lifetimes.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_DEFAULT_TTL_SECONDS = 300.0  # 5 minutes

VIDEO_NAMESPACE = "video"
ARTICLE_NAMESPACE = "article"
RESOURCES_NAMESPACE = "resources"


def video_key(query: str) -> str:
    return f"{VIDEO_NAMESPACE}:{query}"


def article_key(url: str) -> str:
    return f"{ARTICLE_NAMESPACE}:{url}"


def resources_key(kind: str, message: str) -> str:
    return f"{RESOURCES_NAMESPACE}:{kind}:{message}"


@dataclass(slots=True)
class CacheEntry:
    """A cached value and the clock reading at which it was stored."""

    key: str
    value: Any
    stored_at: float


class TTLCache:
    """Process-local key/value store with time-based expiration.

    Attributes:
        ttl_seconds: Age after which an entry is treated as absent.
        max_entries: Optional size bound. When full, the oldest stored
            entry is evicted. ``None`` leaves the map unbounded.
    """

    def __init__(
        self,
        ttl_seconds: float = _DEFAULT_TTL_SECONDS,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: Time-to-live for entries in seconds.
            max_entries: Optional maximum number of live entries.
            clock: Monotonic time source; injectable for tests.
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be positive when set")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on a miss or expired entry.

        An expired entry is deleted as a side effect of the lookup.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.stored_at > self.ttl_seconds:
                del self._entries[key]
                logger.debug("cache_expired", key=key)
                return None
            return entry.value

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``, overwriting and resetting its age."""
        with self._lock:
            # Re-insert so dict order tracks storage time for eviction.
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(
                key=key, value=value, stored_at=self._clock()
            )
            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    oldest = next(iter(self._entries))
                    del self._entries[oldest]
                    logger.debug("cache_evicted", key=oldest)

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("cache_cleared", entries_removed=count)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key) if isinstance(key, str) else None
            return (
                entry is not None
                and self._clock() - entry.stored_at <= self.ttl_seconds
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
