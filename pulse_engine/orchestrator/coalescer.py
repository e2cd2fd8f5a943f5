"""
Pulse Engine — Refresh Coalescer
──────────────────────────────────
Every view request goes through get_or_refresh():

  1. Cache fresh → return it. No upstream call.
  2. Cache stale → under the cache lock, either join the refresh
     already in flight or start one. Never two at once.
  3. Refresh ok     → replace the cache, every waiter gets the new snapshot.
  4. Refresh failed → cache untouched, FallbackPolicy decides
                      (stale snapshot or the error), every waiter gets the same.

A burst of N callers on a stale cache costs exactly one upstream call.
Waiters are shielded: a client that disconnects does not cancel the
refresh other callers are waiting on.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional

from pulse_engine.cache.snapshot_cache import CacheState, Snapshot
from pulse_engine.models.errors import FetchError, UpstreamUnavailable
from pulse_engine.models.pair_record import PairRecord
from pulse_engine.orchestrator.fallback import FallbackPolicy

log = logging.getLogger("pulse.coalescer")

REFRESH_TIMEOUT = 15

Fetcher = Callable[[], Awaitable[Iterable[PairRecord]]]


class Coalescer:

    def __init__(self, cache: CacheState, fetch: Fetcher,
                 fallback: Optional[FallbackPolicy] = None,
                 refresh_timeout: float = REFRESH_TIMEOUT):
        self.cache           = cache
        self._fetch          = fetch
        self.fallback        = fallback or FallbackPolicy()
        self.refresh_timeout = refresh_timeout
        self.refresh_count   = 0
        self.last_error: Optional[FetchError] = None

    @property
    def refreshing(self) -> bool:
        return self.cache.in_flight is not None

    async def get_or_refresh(self) -> Snapshot:
        cache = self.cache
        if cache.is_fresh():
            log.debug("Cache hit")
            return Snapshot.of(cache.entry)

        async with cache.lock:
            # A refresh may have landed while we waited for the lock
            if cache.is_fresh():
                return Snapshot.of(cache.entry)
            task = cache.in_flight
            if task is None:
                task = asyncio.create_task(self._refresh())
                task.add_done_callback(self._on_refresh_done)
                cache.in_flight = task
                self.refresh_count += 1
            else:
                log.debug("Joining in-flight refresh")

        return await asyncio.shield(task)

    async def _refresh(self) -> Snapshot:
        log.info("Cache stale — refreshing from upstream")
        try:
            try:
                pairs = await asyncio.wait_for(self._fetch(), self.refresh_timeout)
            except asyncio.TimeoutError as e:
                raise UpstreamUnavailable(
                    f"Upstream refresh timed out after {self.refresh_timeout}s"
                ) from e
            entry = self.cache.replace(pairs)
            self.last_error = None
            log.info(f"Refreshed: {len(entry.pairs)} pairs cached for {self.cache.ttl:.0f}s")
            return Snapshot.of(entry)
        except FetchError as e:
            self.last_error = e
            return self.fallback.resolve(e, self.cache)
        finally:
            # Slot is cleared before waiters are woken with the outcome
            self.cache.in_flight = None

    def _on_refresh_done(self, task: asyncio.Task):
        # Retrieve the outcome so a refresh whose waiters all went away
        # does not surface as "exception was never retrieved".
        if not task.cancelled() and task.exception() is not None:
            log.debug(f"Refresh ended with {type(task.exception()).__name__}")
