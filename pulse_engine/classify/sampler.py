"""
Pulse Engine — Category Sampler
─────────────────────────────────
Bounds a category to a fixed size.

  matched >= size → pick `size` of them
  matched <  size → all of them, then backfill from the wider pool
                    (skipping anything already picked) until size is
                    reached or the pool runs out

Output never contains the same pair twice (PairRecord.key).
Which records get picked is up to the injected strategy.
"""

import random
from typing import Iterable, List, Optional, Protocol

from pulse_engine.models.pair_record import PairRecord


class SamplingStrategy(Protocol):
    def choose(self, items: List[PairRecord], k: int) -> List[PairRecord]: ...


class FirstN:
    """Deterministic: keep upstream order."""

    def choose(self, items: List[PairRecord], k: int) -> List[PairRecord]:
        return items[:k]


class SeededShuffle:
    """Random pick. A fixed seed gives the same pick for the same input."""

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed

    def choose(self, items: List[PairRecord], k: int) -> List[PairRecord]:
        k = min(k, len(items))
        return random.Random(self.seed).sample(items, k)


def make_strategy(name: str, seed: Optional[int] = None) -> SamplingStrategy:
    if name == "shuffle":
        return SeededShuffle(seed)
    return FirstN()


def _unique(pairs: Iterable[PairRecord], exclude: Optional[set] = None) -> List[PairRecord]:
    seen = set(exclude or ())
    out = []
    for p in pairs:
        if p.key in seen:
            continue
        seen.add(p.key)
        out.append(p)
    return out


def bound(matched: Iterable[PairRecord], pool: Iterable[PairRecord], target_size: int,
          strategy: Optional[SamplingStrategy] = None) -> List[PairRecord]:
    strategy = strategy or FirstN()
    if target_size <= 0:
        return []

    chosen = _unique(matched)
    if len(chosen) >= target_size:
        return strategy.choose(chosen, target_size)

    extras = _unique(pool, exclude={p.key for p in chosen})
    needed = min(target_size - len(chosen), len(extras))
    if needed > 0:
        chosen.extend(strategy.choose(extras, needed))
    return chosen
