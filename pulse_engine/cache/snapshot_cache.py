"""
Pulse Engine — Snapshot Cache
───────────────────────────────
Holds the last successful upstream result and when it was fetched.
One CacheState per process, created by the service and passed around
explicitly. Memory bound is one snapshot.

The entry is an immutable (pairs, fetched_at) pair swapped in one
assignment, so a reader never sees pairs from one fetch with the
timestamp of another.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Tuple

from pulse_engine.models.errors import FetchError
from pulse_engine.models.pair_record import PairRecord


@dataclass(frozen=True)
class CacheEntry:
    pairs:      Tuple[PairRecord, ...]
    fetched_at: float


@dataclass(frozen=True)
class Snapshot:
    """What a view request gets back: the pairs plus how they were obtained."""
    pairs:      Tuple[PairRecord, ...]
    fetched_at: Optional[float]
    stale:      bool = False                  # served from cache after a failed refresh
    error:      Optional[FetchError] = None   # the failure that was suppressed

    @classmethod
    def of(cls, entry: Optional[CacheEntry], **kwargs) -> "Snapshot":
        if entry is None:
            return cls(pairs=(), fetched_at=None, **kwargs)
        return cls(pairs=entry.pairs, fetched_at=entry.fetched_at, **kwargs)


class CacheState:

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time):
        self.ttl    = ttl
        self.clock  = clock
        self._entry: Optional[CacheEntry] = None

        # Refresh bookkeeping, owned by the Coalescer
        self.lock = asyncio.Lock()
        self.in_flight: Optional[asyncio.Task] = None

    @property
    def entry(self) -> Optional[CacheEntry]:
        return self._entry

    def is_fresh(self, now: Optional[float] = None) -> bool:
        entry = self._entry
        if entry is None:
            return False
        now = self.clock() if now is None else now
        return now - entry.fetched_at < self.ttl

    def snapshot(self) -> Tuple[PairRecord, ...]:
        entry = self._entry
        return entry.pairs if entry else ()

    def replace(self, pairs: Iterable[PairRecord], now: Optional[float] = None) -> CacheEntry:
        entry = CacheEntry(
            pairs=tuple(pairs),
            fetched_at=self.clock() if now is None else now,
        )
        self._entry = entry
        return entry

    def age_seconds(self) -> Optional[float]:
        entry = self._entry
        if entry is None:
            return None
        return max(0.0, self.clock() - entry.fetched_at)
