"""
Pulse Engine — Pulse View Service
───────────────────────────────────
What the HTTP layer calls:

  get_category(name) → { ok, category, count, coins, stale, fetchedAt }
  get_pulse()        → { ok, timestamp, fetchedAt, stale, newPairs, finalStretch, migrated }
  lookup_pair(mint)  → { ok, coin }
  health()           → cache / refresh status

Pulse and category requests share one Coalescer and one CacheState,
so any mix of them arriving on a stale cache costs one upstream call.
Failures come back as { ok: false, error, kind }, never as partial data.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pulse_engine.cache.snapshot_cache import CacheState, Snapshot
from pulse_engine.classify.classifiers import Category, ClassificationRules, build_predicates
from pulse_engine.classify.sampler import SamplingStrategy, bound, make_strategy
from pulse_engine.config import Settings
from pulse_engine.fetchers.upstream import UpstreamClient
from pulse_engine.models.errors import FetchError
from pulse_engine.models.pair_record import PairRecord
from pulse_engine.orchestrator.coalescer import Coalescer

log = logging.getLogger("pulse.api")


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class PulseService:

    def __init__(self, settings: Optional[Settings] = None,
                 upstream: Optional[UpstreamClient] = None,
                 clock=time.time,
                 strategy: Optional[SamplingStrategy] = None):
        self.settings = settings or Settings()
        s = self.settings
        self.clock    = clock
        self.upstream = upstream or UpstreamClient(s.strategies, timeout=s.request_timeout)
        self.cache    = CacheState(ttl=s.cache_ttl, clock=clock)
        self.coalescer = Coalescer(self.cache, self.upstream.fetch,
                                   refresh_timeout=s.refresh_timeout)
        self.rules = ClassificationRules(
            originator_venue=s.originator_venue,
            graduated_venue=s.graduated_venue,
            valuation_metric=s.valuation_metric,
            final_stretch_threshold=s.final_stretch_threshold,
            migrated_threshold=s.migrated_threshold,
        )
        self.predicates = build_predicates(self.rules)
        self.strategy   = strategy or make_strategy(s.sampler, s.sampler_seed)

        # Category selection is computed once per snapshot
        self._selected_for: Optional[tuple] = None
        self._selected: Dict[Category, List[PairRecord]] = {}

    async def aclose(self):
        await self.upstream.aclose()

    # ── Classification + sampling ─────────────────────────────
    def _select(self, snapshot: Snapshot) -> Dict[Category, List[PairRecord]]:
        if self._selected_for is snapshot.pairs:
            return self._selected
        pool = snapshot.pairs
        selected = {}
        for category, predicate in self.predicates.items():
            matched = [p for p in pool if predicate(p)]
            size = self.settings.size_for(category)
            selected[category] = bound(matched, pool, size, self.strategy)
            log.debug(f"{category.value}: {len(matched)} matched, {len(selected[category])} served")
        self._selected_for = pool
        self._selected = selected
        return selected

    def _coins(self, pairs: List[PairRecord]) -> List[dict]:
        now_ms = int(self.clock() * 1000)
        return [p.to_coin(now_ms) for p in pairs]

    # ── Views ─────────────────────────────────────────────────
    async def get_category(self, name: str) -> dict:
        """Raises UnknownCategory for a name that is not a category."""
        category = Category.parse(name)
        try:
            snapshot = await self.coalescer.get_or_refresh()
        except FetchError as e:
            log.error(f"{category.value}: no data to serve — {e.message}")
            return e.to_dict()

        coins = self._coins(self._select(snapshot)[category])
        return {
            "ok":        True,
            "category":  category.value,
            "count":     len(coins),
            "coins":     coins,
            "stale":     snapshot.stale,
            "fetchedAt": _iso(snapshot.fetched_at),
        }

    async def get_pulse(self) -> dict:
        try:
            snapshot = await self.coalescer.get_or_refresh()
        except FetchError as e:
            log.error(f"pulse: no data to serve — {e.message}")
            return e.to_dict()

        selected = self._select(snapshot)
        result = {
            "ok":        True,
            "timestamp": _iso(self.clock()),
            "fetchedAt": _iso(snapshot.fetched_at),
            "stale":     snapshot.stale,
        }
        for category in Category:
            result[category.response_key] = self._coins(selected[category])
        return result

    async def lookup_pair(self, mint: str) -> dict:
        """Direct pass-through lookup. Not cached, not coalesced."""
        mint = (mint or "").strip()
        if not mint:
            return {"ok": False, "error": "Missing mint", "kind": "bad_request"}
        try:
            pair = await self.upstream.fetch_pair(mint)
        except FetchError as e:
            log.warning(f"Lookup {mint[:12]} failed: {e.message}")
            return e.to_dict()
        if pair is None:
            return {"ok": False, "error": f"No pair found for {mint}", "kind": "not_found"}
        return {"ok": True, "coin": pair.to_coin(int(self.clock() * 1000))}

    def health(self) -> dict:
        entry = self.cache.entry
        age = self.cache.age_seconds()
        last_error = self.coalescer.last_error
        return {
            "status":     "healthy",
            "cache": {
                "pairs":     len(entry.pairs) if entry else 0,
                "fresh":     self.cache.is_fresh(),
                "age_s":     round(age, 1) if age is not None else None,
                "ttl_s":     self.cache.ttl,
                "fetchedAt": _iso(entry.fetched_at) if entry else None,
            },
            "refreshing": self.coalescer.refreshing,
            "refreshes":  self.coalescer.refresh_count,
            "lastError":  last_error.message if last_error else None,
            "timestamp":  int(self.clock()),
        }
