import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Generic, Optional, TypeVar

from streamflow.configs import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TTLClass(str, Enum):
    SHORT = "short"
    VERIFIED = "verified"


@dataclass
class CacheEntry(Generic[T]):
    """Represents a cache entry with metadata."""

    value: T
    stored_at: float
    ttl_class: TTLClass = TTLClass.SHORT
    verified: bool = False
    hits: int = 1


class TTLCache(Generic[T]):
    """Thread-safe, LRU-bounded in-memory cache with per-entry TTL classes.

    An entry counts how many times it has been served, starting at one for the
    resolution that stored it. Once served more than once it is marked verified
    and moves to the verified TTL class.
    """

    def __init__(
        self,
        name: str,
        ttl_ms: Dict[TTLClass, int],
        max_entries: int = 2048,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.ttl_ms = ttl_ms
        self.max_entries = max_entries
        self._clock = clock
        self._cache: OrderedDict[str, CacheEntry[T]] = OrderedDict()
        self._lock = threading.Lock()

    def ttl_seconds(self, ttl_class: TTLClass) -> float:
        return self.ttl_ms.get(ttl_class, self.ttl_ms[TTLClass.SHORT]) / 1000

    def _is_expired(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.stored_at > self.ttl_seconds(entry.ttl_class)

    def _promote(self, entry: CacheEntry[T]) -> None:
        if not entry.verified and entry.hits > 1:
            entry.verified = True
            entry.ttl_class = TTLClass.VERIFIED

    def get(self, key: str) -> Optional[CacheEntry[T]]:
        """Return the live entry for `key` and count it as served; expired entries are evicted."""
        with self._lock:
            entry = self._cache.pop(key, None)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                logger.debug(f"[{self.name}] Evicting expired entry {key}")
                return None
            entry.hits += 1
            self._promote(entry)
            self._cache[key] = entry
            return entry

    def peek(self, key: str) -> Optional[CacheEntry[T]]:
        """Return the live entry for `key` without counting a hit."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None or self._is_expired(entry, self._clock()):
                return None
            return entry

    def set(self, key: str, value: T, ttl_class: Optional[TTLClass] = None) -> CacheEntry[T]:
        """
        Store `value` under `key`.

        Re-storing a key whose entry is still live keeps its serve count, so a
        mapping that keeps resolving to a working stream becomes verified.
        """
        with self._lock:
            now = self._clock()
            previous = self._cache.pop(key, None)
            entry = CacheEntry(value=value, stored_at=now, ttl_class=ttl_class or TTLClass.SHORT)
            if previous is not None and not self._is_expired(previous, now):
                entry.hits = previous.hits + 1
                entry.verified = previous.verified
                if previous.verified:
                    entry.ttl_class = TTLClass.VERIFIED
            self._promote(entry)

            while len(self._cache) >= self.max_entries and self._cache:
                evicted_key, _ = self._cache.popitem(last=False)
                logger.debug(f"[{self.name}] Evicting least recently used entry {evicted_key}")

            self._cache[key] = entry
            return entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def sweep(self) -> int:
        """Remove every expired entry and return how many were dropped."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._cache.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._cache[key]
        if expired:
            logger.debug(f"[{self.name}] Swept {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)


def build_resolution_cache(clock: Callable[[], float] = time.time) -> TTLCache:
    return TTLCache(
        "resolution",
        ttl_ms={
            TTLClass.SHORT: settings.stream_api_cache_ttl_ms,
            TTLClass.VERIFIED: settings.stream_api_cache_ttl_ms_verified,
        },
        max_entries=settings.cache_max_entries,
        clock=clock,
    )


def build_ranking_cache(clock: Callable[[], float] = time.time) -> TTLCache:
    # Rankings go stale as fast as providers rotate, so they never get the verified TTL.
    return TTLCache(
        "ranking",
        ttl_ms={
            TTLClass.SHORT: settings.probe_cache_ttl_ms,
            TTLClass.VERIFIED: settings.probe_cache_ttl_ms,
        },
        max_entries=settings.cache_max_entries,
        clock=clock,
    )


def build_embed_cache(clock: Callable[[], float] = time.time) -> TTLCache:
    return TTLCache(
        "embed",
        ttl_ms={
            TTLClass.SHORT: settings.embed_cache_ttl_ms,
            TTLClass.VERIFIED: settings.stream_api_cache_ttl_ms_verified,
        },
        max_entries=settings.cache_max_entries,
        clock=clock,
    )
