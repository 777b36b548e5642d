import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Generic, Optional, TypeVar

from streamflow.utils.cache_utils import TTLCache, TTLClass

logger = logging.getLogger(__name__)

T = TypeVar("T")

# In-flight markers older than this are dropped even if their work never settles.
MIN_SAFETY_CEILING_MS = 15000


@dataclass
class InFlightRequest(Generic[T]):
    started_at: float
    task: Optional["asyncio.Task[T]"] = None


class RequestCoordinator(Generic[T]):
    """Deduplicates concurrent upstream work per cache key.

    A caller either gets a cached value, joins the work another caller started
    less than `debounce_ms` ago, or starts the work itself. Work runs in its own
    task: a caller that stops waiting does not cancel it, and a successful result
    is written to the cache from inside the task.
    """

    def __init__(
        self,
        cache: TTLCache,
        debounce_ms: int,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.debounce_ms = debounce_ms
        self.safety_ceiling_ms = max(debounce_ms * 10, MIN_SAFETY_CEILING_MS)
        self._clock = clock
        self._in_flight: Dict[str, InFlightRequest[T]] = {}

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def sweep(self) -> None:
        """Drop expired cache entries and in-flight markers past the safety ceiling."""
        self.cache.sweep()
        now = self._clock()
        stale = [
            key
            for key, request in self._in_flight.items()
            if (now - request.started_at) * 1000 > self.safety_ceiling_ms
        ]
        for key in stale:
            logger.warning(f"[{self.cache.name}] Dropping in-flight marker for {key} after safety timeout")
            del self._in_flight[key]

    async def resolve(
        self,
        key: str,
        work: Callable[[], Awaitable[T]],
        is_success: Optional[Callable[[T], bool]] = None,
        ttl_class: Optional[TTLClass] = None,
    ) -> T:
        """
        Return the value for `key`, running `work` at most once for concurrent callers.

        Args:
            key (str): Cache key identifying the resolution.
            work (Callable): Zero-argument coroutine function producing the value.
            is_success (Callable | None): Decides whether a value may be cached. Defaults to always.
            ttl_class (TTLClass | None): TTL class for a freshly stored value.

        Returns:
            The cached, joined or freshly produced value. Exceptions raised by `work`
            reach every caller waiting on it.
        """
        self.sweep()

        entry = self.cache.get(key)
        if entry is not None:
            logger.info(f"[{self.cache.name}] Cache hit for {key}")
            return entry.value

        now = self._clock()
        existing = self._in_flight.get(key)
        if existing is not None and (now - existing.started_at) * 1000 <= self.debounce_ms:
            logger.info(f"[{self.cache.name}] Joining in-flight resolution for {key}")
            return await asyncio.shield(existing.task)

        logger.info(f"[{self.cache.name}] Cache miss for {key}, starting resolution")
        request = InFlightRequest(started_at=now)
        request.task = asyncio.ensure_future(self._run(key, request, work, is_success, ttl_class))
        request.task.add_done_callback(self._log_failure)
        self._in_flight[key] = request
        return await asyncio.shield(request.task)

    def _log_failure(self, task: "asyncio.Task[T]") -> None:
        # Retrieves the exception so abandoned work does not warn at garbage collection.
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"[{self.cache.name}] Resolution failed: {task.exception()!r}")

    async def _run(
        self,
        key: str,
        request: InFlightRequest[T],
        work: Callable[[], Awaitable[T]],
        is_success: Optional[Callable[[T], bool]],
        ttl_class: Optional[TTLClass],
    ) -> T:
        try:
            result = await work()
            if is_success is None or is_success(result):
                self.cache.set(key, result, ttl_class)
            else:
                logger.debug(f"[{self.cache.name}] Not caching unsuccessful result for {key}")
            return result
        finally:
            if self._in_flight.get(key) is request:
                del self._in_flight[key]
