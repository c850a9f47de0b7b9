"""
Response cache for Codora.

Content-addressed store of previous explanations with LRU eviction and
TTL expiry. Every public operation fails open: storage problems are logged
and turn into a miss, never an exception.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from codora.errors import CacheError
from codora.models import CacheEntry
from codora.storage import InMemoryStore, KeyValueStore

logger = logging.getLogger("codora.cache")

CACHE_KEY = "codora.cache"
CACHE_STATS_KEY = "codora.cacheStats"

DEFAULT_MAX_ENTRIES = 1000
DEFAULT_TTL = timedelta(days=7)

_WHITESPACE = re.compile(r"\s+")


@dataclass
class CacheStats:
    """Snapshot of cache state."""
    entries: int
    hit_rate: float
    hits: int
    misses: int
    size_bytes: int
    oldest: Optional[datetime]
    newest: Optional[datetime]


def compute_key(code: str, context: str, language: str) -> str:
    """
    Content-addressed key for a request.

    Whitespace runs in the code collapse to one space, so reformatting
    a snippet does not defeat the cache.
    """
    normalized = _WHITESPACE.sub(" ", code.strip())
    data = f"{normalized}|{context}|{language}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


class ResponseCache:
    """
    LRU + TTL cache of explanation text.

    Example:
        ```python
        cache = ResponseCache(max_entries=500)
        key = cache.compute_key(code, "function", "python")
        text = cache.get(key)
        if text is None:
            text = call_backend(...)
            cache.set(key, text)
        ```
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl: timedelta = DEFAULT_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the cache and load persisted entries.

        Args:
            store: Key-value backend for persistence. Defaults to in-memory.
            max_entries: Capacity before LRU eviction kicks in.
            ttl: Maximum age of an entry, measured from creation.
            clock: Returns the current UTC time. Injected by tests.
        """
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        self._store = store if store is not None else InMemoryStore()
        self._max_entries = max_entries
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        # Held across snapshot and write so an older snapshot never lands last.
        self._persist_lock = threading.Lock()

        # Ordered least- to most-recently accessed.
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0

        self._load()

    compute_key = staticmethod(compute_key)

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    # =========================================================================
    # Lookups
    # =========================================================================

    def get(self, key: str) -> Optional[str]:
        """Return the cached value, or None on miss or expiry."""
        try:
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    self._misses += 1
                    return None

                now = self._clock()
                if self._is_expired(entry, now):
                    del self._entries[key]
                    self._misses += 1
                    expired = True
                else:
                    entry.access_count += 1
                    entry.last_accessed_at = now
                    self._entries.move_to_end(key)
                    self._hits += 1
                    expired = False
            if expired:
                logger.debug("Cache entry %s... expired", key[:8])
                self._persist()
                return None
            return entry.value
        except Exception:
            logger.exception("Cache lookup failed; treating as miss")
            return None

    def set(self, key: str, value: str) -> None:
        """Insert or overwrite an entry, evicting the LRU entry at capacity."""
        try:
            with self._lock:
                now = self._clock()
                if key in self._entries:
                    del self._entries[key]
                else:
                    while len(self._entries) >= self._max_entries:
                        self._evict_lru()
                self._entries[key] = CacheEntry(
                    key=key,
                    value=value,
                    created_at=now,
                    last_accessed_at=now,
                    access_count=1,
                )
            self._persist()
        except Exception:
            logger.exception("Cache write failed for %s...", key[:8])

    def clear(self) -> None:
        """Drop every entry and reset hit/miss counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        self._persist()
        logger.info("Cache cleared")

    def info(self, key: str) -> Optional[CacheEntry]:
        """Entry metadata without touching recency or counters."""
        with self._lock:
            return self._entries.get(key)

    def top_accessed(self, limit: int = 10) -> list[CacheEntry]:
        """Most frequently hit entries."""
        with self._lock:
            entries = list(self._entries.values())
        return sorted(entries, key=lambda e: e.access_count, reverse=True)[:limit]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    # =========================================================================
    # Maintenance
    # =========================================================================

    def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if self._is_expired(e, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("Cleaned up %d expired cache entries", len(expired))
            self._persist()
        return len(expired)

    def reconfigure(self, max_entries: Optional[int] = None, ttl: Optional[timedelta] = None) -> None:
        """Apply new limits, evicting down to the new capacity."""
        if max_entries is not None and max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        with self._lock:
            if max_entries is not None:
                self._max_entries = max_entries
            if ttl is not None:
                self._ttl = ttl
            while len(self._entries) > self._max_entries:
                self._evict_lru()
        self._persist()

    def stats(self) -> CacheStats:
        """Hit/miss counters and size. Read-only."""
        with self._lock:
            entries = list(self._entries.values())
            hits, misses = self._hits, self._misses

        total = hits + misses
        created = [e.created_at for e in entries]
        size_bytes = sum(
            len(json.dumps(e.to_dict()).encode("utf-8")) for e in entries
        )
        return CacheStats(
            entries=len(entries),
            hit_rate=hits / total if total > 0 else 0.0,
            hits=hits,
            misses=misses,
            size_bytes=size_bytes,
            oldest=min(created) if created else None,
            newest=max(created) if created else None,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _is_expired(self, entry: CacheEntry, now: datetime) -> bool:
        return now - entry.created_at > self._ttl

    def _evict_lru(self) -> None:
        key, _ = self._entries.popitem(last=False)
        logger.debug("Evicted cache entry (LRU): %s...", key[:8])

    def _load(self) -> None:
        try:
            raw_entries = self._store.get(CACHE_KEY, {}) or {}
            raw_stats = self._store.get(CACHE_STATS_KEY, {}) or {}
            entries = [CacheEntry.from_dict(k, v) for k, v in raw_entries.items()]
        except Exception:
            logger.exception("Failed to load cache from storage; starting empty")
            return

        entries.sort(key=lambda e: e.last_accessed_at)
        now = self._clock()
        for entry in entries:
            if not self._is_expired(entry, now):
                self._entries[entry.key] = entry
        while len(self._entries) > self._max_entries:
            self._evict_lru()

        self._hits = int(raw_stats.get("hits", 0))
        self._misses = int(raw_stats.get("misses", 0))
        if self._entries:
            logger.info("Loaded %d cache entries from storage", len(self._entries))

    def _persist(self) -> None:
        try:
            self._save()
        except CacheError:
            logger.warning("Failed to save cache to storage", exc_info=True)

    def _save(self) -> None:
        with self._persist_lock:
            with self._lock:
                data = {k: e.to_dict() for k, e in self._entries.items()}
                stats = {"hits": self._hits, "misses": self._misses}
            try:
                self._store.set(CACHE_KEY, data)
                self._store.set(CACHE_STATS_KEY, stats)
            except Exception as e:
                raise CacheError(f"cache persistence failed: {e}") from e
