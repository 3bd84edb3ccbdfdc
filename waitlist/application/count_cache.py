from __future__ import annotations
import logging
import time
from typing import Callable

from waitlist.config import DEFAULT_CACHE_TTL
from waitlist.domain.entities import CountCacheEntry, OperationResult
from waitlist.domain.interfaces import ISignupGateway

log = logging.getLogger(__name__)

MSG_FROM_CACHE = "Signup count retrieved from cache"


class CountCache:
    """
    Time-boxed memo in front of ISignupGateway.fetch_count.

    The signup count is a single unparameterised value, so the cache holds
    one slot. The slot is replaced whole on every successful fetch and is
    never touched by a failed one, nor by a fetch that was already in
    flight when invalidate() was called.
    """

    def __init__(self, gateway: ISignupGateway, clock: Callable[[], float] = time.monotonic, default_ttl: float = DEFAULT_CACHE_TTL) -> None:
        self._gateway     = gateway
        self._clock       = clock
        self._default_ttl = default_ttl
        self._entry: CountCacheEntry | None = None
        self._version     = 0

    @property
    def entry(self) -> CountCacheEntry | None:
        return self._entry

    async def get_cached(self, ttl: float | None = None) -> OperationResult[int]:
        ttl = self._default_ttl if ttl is None else ttl
        entry = self._entry
        if entry is not None and self._clock() - entry.fetched_at < ttl:
            log.debug("Count cache hit | count=%d", entry.count)
            return OperationResult.success(entry.count, MSG_FROM_CACHE)

        version = self._version
        result = await self._gateway.fetch_count()
        if not result.ok:
            return result
        if version != self._version:
            log.debug("Count cache invalidated during fetch | discarding count=%d", result.value)
            return result
        self._entry = CountCacheEntry(count=result.value, fetched_at=self._clock())
        return result

    def invalidate(self) -> None:
        self._entry    = None
        self._version += 1
