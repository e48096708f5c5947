"""In-memory TTL cache sitting in front of DocumentStore reads.

Entries are keyed by a logical cache key: a collection name for whole
collection reads, or a tuple for derived queries (search results,
activity pages). Each entry records which collections it was derived
from so a write to a collection can drop every dependent entry.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Any

from storefront.constants import DEFAULT_CACHE_MAXSIZE, DEFAULT_CACHE_TTL_SECS

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class _CacheEntry:
    """Internal cache entry with expiry and source-collection tracking."""

    value: Any
    expires_at: float
    depends_on: frozenset[str] = field(default_factory=frozenset)


class CacheLayer:
    """Read-through TTL cache with LRU bound and write-driven invalidation.

    - ``get()`` returns the cached value or ``default``; expired entries
      count as misses and are purged on lookup.
    - ``set()`` stores a value with the dependencies it was derived from.
    - ``invalidate_collection(name)`` drops the collection's own entry and
      every derived entry listing it as a dependency.
    - When ``maxsize`` is reached the least-recently-used entry is evicted.
    - ``maxsize <= 0`` disables caching: ``set()`` stores nothing.

    Process-local: nothing here is shared across server instances.
    """

    def __init__(
        self,
        ttl_secs: float = DEFAULT_CACHE_TTL_SECS,
        maxsize: int = DEFAULT_CACHE_MAXSIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_secs
        self._maxsize = maxsize
        self._clock = clock
        self._entries: OrderedDict[Hashable, _CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._invalidations = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the live value for ``key`` or ``default`` on miss/expiry."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return default
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self._misses += 1
            return default
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.value

    def contains(self, key: Hashable) -> bool:
        """True when ``key`` holds a live entry. Does not touch hit counters."""
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry.expires_at

    def set(
        self,
        key: Hashable,
        value: Any,
        depends_on: Iterable[str] = (),
        ttl_secs: float | None = None,
    ) -> None:
        """Store ``value`` under ``key``.

        A plain string key is treated as a collection name and implicitly
        depends on itself.
        """
        deps = frozenset(depends_on)
        if isinstance(key, str):
            deps = deps | {key}
        ttl = self._ttl if ttl_secs is None else ttl_secs

        if self._maxsize <= 0:
            return
        if key in self._entries:
            del self._entries[key]
        while self._entries and len(self._entries) >= self._maxsize:
            self._evict_lru()

        self._entries[key] = _CacheEntry(
            value=value, expires_at=self._clock() + ttl, depends_on=deps
        )

    def invalidate(self, key: Hashable) -> bool:
        """Drop one entry. Returns True if something was removed."""
        if self._entries.pop(key, _MISSING) is _MISSING:
            return False
        self._invalidations += 1
        return True

    def invalidate_collection(self, name: str) -> int:
        """Drop every entry derived from collection ``name``. Returns the count."""
        stale = [k for k, e in self._entries.items() if name in e.depends_on]
        for key in stale:
            del self._entries[key]
        self._invalidations += len(stale)
        if stale:
            logger.debug("Invalidated %d cache entries for %s.", len(stale), name)
        return len(stale)

    def purge_expired(self) -> int:
        """Remove all expired entries. Returns the count removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def _evict_lru(self) -> None:
        if not self._entries:
            return
        self._entries.popitem(last=False)
        self._evictions += 1

    @property
    def size(self) -> int:
        """Number of entries currently held (including not-yet-purged expired ones)."""
        return len(self._entries)

    def health(self) -> dict[str, object]:
        """Return cache metrics for monitoring."""
        return {
            "cache_size": self.size,
            "maxsize": self._maxsize,
            "ttl_secs": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "invalidations": self._invalidations,
        }
