"""
Pulse Engine — Pair Classifiers
─────────────────────────────────
Pure functions. No side effects. No data fetching.
Take normalised pairs, return the ones belonging to a category.

  NewPairs      on the bonding-curve venue
  FinalStretch  on the bonding-curve venue AND valuation >= threshold
  Migrated      on the graduated venue (AND valuation >= threshold, if set)

Venue ids, the valuation metric (fdv / market cap) and thresholds
are configuration. Unknown valuations read as 0, so a pair without
an FDV fails any positive threshold instead of raising.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List

from pulse_engine.models.errors import UnknownCategory
from pulse_engine.models.pair_record import PairRecord


class Category(str, Enum):
    NEW_PAIRS     = "NewPairs"
    FINAL_STRETCH = "FinalStretch"
    MIGRATED      = "Migrated"

    @property
    def response_key(self) -> str:
        """camelCase key used in the pulse response."""
        return self.value[0].lower() + self.value[1:]

    @classmethod
    def parse(cls, name: str) -> "Category":
        """Accepts NewPairs, newPairs, new-pairs, new_pairs, NEW_PAIRS..."""
        wanted = (name or "").replace("-", "").replace("_", "").lower()
        for category in cls:
            if category.value.lower() == wanted:
                return category
        raise UnknownCategory(f"Unknown category: {name!r}")


@dataclass(frozen=True)
class ClassificationRules:
    originator_venue:        str = "pumpfun"
    graduated_venue:         str = "pumpswap"
    valuation_metric:        str = "fdv"
    final_stretch_threshold: float = 15_000.0
    migrated_threshold:      float = 0.0


Predicate = Callable[[PairRecord], bool]


def _total(predicate: Predicate) -> Predicate:
    """One malformed record must never abort classification."""
    def safe(pair: PairRecord) -> bool:
        try:
            return bool(predicate(pair))
        except (AttributeError, TypeError, ValueError):
            return False
    return safe


def build_predicates(rules: ClassificationRules) -> Dict[Category, Predicate]:
    metric = rules.valuation_metric

    def is_new(p: PairRecord) -> bool:
        return p.source_id == rules.originator_venue

    def is_final_stretch(p: PairRecord) -> bool:
        return is_new(p) and p.valuation(metric) >= rules.final_stretch_threshold

    def is_migrated(p: PairRecord) -> bool:
        if p.source_id != rules.graduated_venue:
            return False
        if rules.migrated_threshold > 0:
            return p.valuation(metric) >= rules.migrated_threshold
        return True

    return {
        Category.NEW_PAIRS:     _total(is_new),
        Category.FINAL_STRETCH: _total(is_final_stretch),
        Category.MIGRATED:      _total(is_migrated),
    }


def classify(pairs: Iterable[PairRecord], category: Category,
             rules: ClassificationRules = ClassificationRules()) -> List[PairRecord]:
    """Subsequence of pairs matching the category, input order preserved."""
    predicate = build_predicates(rules)[category]
    return [p for p in pairs if predicate(p)]
