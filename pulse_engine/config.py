"""
Pulse Engine — Configuration
──────────────────────────────
Single source of truth for cache durations, upstream queries,
venue ids and category sizing. Override via environment variables
(app.py loads .env first).

  PULSE_CACHE_TTL                 seconds a snapshot stays fresh
  PULSE_REQUEST_TIMEOUT           per-request httpx timeout
  PULSE_REFRESH_TIMEOUT           bound on one whole refresh (all strategies)
  PULSE_UPSTREAM_URLS             "shape|url,shape|url" tried in order
  PULSE_ORIGINATOR_VENUE          bonding-curve venue id
  PULSE_GRADUATED_VENUE           post-graduation venue id
  PULSE_VALUATION_METRIC          "fdv" or "market_cap"
  PULSE_FINAL_STRETCH_THRESHOLD   USD valuation for FinalStretch
  PULSE_MIGRATED_THRESHOLD        USD valuation for Migrated (0 = none)
  PULSE_CATEGORY_SIZE             coins per category
  PULSE_<CATEGORY>_SIZE           per-category override, e.g. PULSE_FINAL_STRETCH_SIZE
  PULSE_SAMPLER                   "first" or "shuffle"
  PULSE_SAMPLER_SEED              seed for "shuffle" (unset = random)
"""

import logging
import math
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from pulse_engine.classify.classifiers import Category
from pulse_engine.fetchers.upstream import QueryStrategy

log = logging.getLogger("pulse.config")

# ── Defaults ──────────────────────────────────────────────────
CACHE_TTL       = 30      # observed range 15-60s
REQUEST_TIMEOUT = 8
REFRESH_TIMEOUT = 15
CATEGORY_SIZE   = 15

ORIGINATOR_VENUE = "pumpfun"
GRADUATED_VENUE  = "pumpswap"
VALUATION_METRICS = ("fdv", "market_cap")

FINAL_STRETCH_THRESHOLD = 15_000.0
MIGRATED_THRESHOLD      = 0.0

SAMPLERS = ("first", "shuffle")

# Tried in order; first non-empty result wins.
DEFAULT_UPSTREAM_URLS = [
    "dexscreener|https://api.dexscreener.com/latest/dex/search?q=pump",
    "geckoterminal|https://api.geckoterminal.com/api/v2/networks/solana/new_pools",
    "geckoterminal|https://api.geckoterminal.com/api/v2/networks/solana/pools",
]


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        value = math.nan
    if not math.isfinite(value):
        log.warning(f"{name}={raw!r} is not a number — using {default}")
        return default
    return value


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = _env_float(env, name, default)
    return int(value) if value > 0 else default


def _env_size(env: Mapping[str, str], name: str) -> Optional[int]:
    """Optional positive int; unset or invalid gives None."""
    value = _env_float(env, name, 0)
    return int(value) if value > 0 else None


def _env_choice(env: Mapping[str, str], name: str, choices: tuple, default: str) -> str:
    raw = (env.get(name) or "").strip().lower()
    if not raw:
        return default
    if raw not in choices:
        log.warning(f"{name}={raw!r} not one of {choices} — using {default}")
        return default
    return raw


def parse_strategies(raw: str) -> List[QueryStrategy]:
    """
    Parse "shape|url,shape|url". A bare url is treated as dexscreener.
    Unknown shapes are skipped with a warning.
    """
    strategies = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        shape, sep, url = item.partition("|")
        if not sep:
            shape, url = "dexscreener", item
        shape = shape.strip().lower()
        url   = url.strip()
        if shape not in QueryStrategy.SHAPES:
            log.warning(f"Skipping upstream {url[:60]}: unknown shape {shape!r}")
            continue
        strategies.append(QueryStrategy(url=url, shape=shape))
    return strategies


@dataclass
class Settings:
    cache_ttl:               float = CACHE_TTL
    request_timeout:         float = REQUEST_TIMEOUT
    refresh_timeout:         float = REFRESH_TIMEOUT
    strategies:              List[QueryStrategy] = field(
        default_factory=lambda: parse_strategies(",".join(DEFAULT_UPSTREAM_URLS)))
    originator_venue:        str = ORIGINATOR_VENUE
    graduated_venue:         str = GRADUATED_VENUE
    valuation_metric:        str = "fdv"
    final_stretch_threshold: float = FINAL_STRETCH_THRESHOLD
    migrated_threshold:      float = MIGRATED_THRESHOLD
    category_size:           int = CATEGORY_SIZE
    category_sizes:          Dict[Category, int] = field(default_factory=dict)
    sampler:                 str = "first"
    sampler_seed:            Optional[int] = None

    def size_for(self, category: Category) -> int:
        return self.category_sizes.get(category, self.category_size)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env

        strategies = parse_strategies(env.get("PULSE_UPSTREAM_URLS", ""))
        if not strategies:
            strategies = parse_strategies(",".join(DEFAULT_UPSTREAM_URLS))

        category_sizes = {}
        for category in Category:
            size = _env_size(env, f"PULSE_{category.name}_SIZE")
            if size is not None:
                category_sizes[category] = size

        seed_raw = (env.get("PULSE_SAMPLER_SEED") or "").strip()
        seed = None
        if seed_raw:
            try:
                seed = int(seed_raw)
            except ValueError:
                log.warning(f"PULSE_SAMPLER_SEED={seed_raw!r} is not an integer — ignoring")

        return cls(
            cache_ttl=_env_float(env, "PULSE_CACHE_TTL", CACHE_TTL),
            request_timeout=_env_float(env, "PULSE_REQUEST_TIMEOUT", REQUEST_TIMEOUT),
            refresh_timeout=_env_float(env, "PULSE_REFRESH_TIMEOUT", REFRESH_TIMEOUT),
            strategies=strategies,
            originator_venue=env.get("PULSE_ORIGINATOR_VENUE", ORIGINATOR_VENUE).strip(),
            graduated_venue=env.get("PULSE_GRADUATED_VENUE", GRADUATED_VENUE).strip(),
            valuation_metric=_env_choice(env, "PULSE_VALUATION_METRIC", VALUATION_METRICS, "fdv"),
            final_stretch_threshold=_env_float(
                env, "PULSE_FINAL_STRETCH_THRESHOLD", FINAL_STRETCH_THRESHOLD),
            migrated_threshold=_env_float(env, "PULSE_MIGRATED_THRESHOLD", MIGRATED_THRESHOLD),
            category_size=_env_int(env, "PULSE_CATEGORY_SIZE", CATEGORY_SIZE),
            category_sizes=category_sizes,
            sampler=_env_choice(env, "PULSE_SAMPLER", SAMPLERS, "first"),
            sampler_seed=seed,
        )
