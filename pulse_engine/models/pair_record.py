"""
Pulse Engine — Pair Record Model
──────────────────────────────────
Canonical shape of one tradable pair after provider normalisation,
plus the "coin" presentation served to downstream clients.
"""

import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class PairRecord:
    source_id:      str                      # venue / program id, e.g. "pumpfun"
    base_symbol:    str = ""
    base_name:      str = ""
    price_usd:      Optional[float] = None
    fdv_usd:        Optional[float] = None
    market_cap_usd: Optional[float] = None
    created_at:     Optional[int] = None     # epoch ms
    logo_url:       Optional[str] = None
    detail_url:     str = ""
    pair_address:   Optional[str] = None

    @property
    def key(self) -> str:
        """Identity used for de-duplication within one output list."""
        if self.detail_url:
            return self.detail_url
        if self.pair_address:
            return self.pair_address
        return f"{self.source_id}:{self.base_symbol}"

    def valuation(self, metric: str = "fdv") -> float:
        """Numeric valuation for threshold checks. Unknown values read as 0."""
        value = self.market_cap_usd if metric == "market_cap" else self.fdv_usd
        return value or 0.0

    def to_coin(self, now_ms: Optional[int] = None) -> dict:
        return {
            "symbol":    self.base_symbol or "N/A",
            "name":      self.base_name or "Unknown Token",
            "logo":      self.logo_url,
            "priceUsd":  f"${self.price_usd:.6f}" if self.price_usd else "N/A",
            "marketCap": format_number(self.market_cap_usd),
            "fdv":       format_number(self.fdv_usd),
            "url":       self.detail_url,
            "age":       time_ago(self.created_at, now_ms),
            "venue":     self.source_id,
        }


# ── Presentation helpers ──────────────────────────────────────
def format_number(num: Optional[float]) -> str:
    if not num:
        return "N/A"
    if num >= 1_000_000_000:
        return f"{num / 1_000_000_000:.1f}B"
    if num >= 1_000_000:
        return f"{num / 1_000_000:.1f}M"
    if num >= 1_000:
        return f"{num / 1_000:.1f}K"
    return f"{num:g}"


def time_ago(created_ms: Optional[int], now_ms: Optional[int] = None) -> str:
    if not created_ms:
        return "Unknown"
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    mins = (now_ms - created_ms) // 60_000
    if mins < 1:
        return "just now"
    if mins < 60:
        return f"{mins}m ago"
    hrs = mins // 60
    if hrs < 24:
        return f"{hrs}h ago"
    return f"{hrs // 24}d ago"
