"""
Pulse Engine — Fallback Policy
────────────────────────────────
Decides what a failed refresh turns into.

  prior non-empty snapshot (any age) → serve it, marked stale
  nothing cached                     → re-raise the upstream error

Never retries. The next refresh happens when the next caller
arrives after the TTL has run out.
"""

import logging

from pulse_engine.cache.snapshot_cache import CacheState, Snapshot
from pulse_engine.models.errors import FetchError

log = logging.getLogger("pulse.fallback")


class FallbackPolicy:

    def resolve(self, error: FetchError, cache: CacheState) -> Snapshot:
        entry = cache.entry
        if entry is None or not entry.pairs:
            log.warning(f"Upstream failed with no snapshot to fall back on: {error.message}")
            raise error

        age = cache.age_seconds() or 0.0
        log.warning(
            f"Upstream failed ({error.message}) — serving last known snapshot "
            f"({len(entry.pairs)} pairs, {age:.0f}s old)"
        )
        return Snapshot.of(entry, stale=True, error=error)
