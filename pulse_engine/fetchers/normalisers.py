"""
Pulse Engine — Provider Normalisers
─────────────────────────────────────
Pure functions. No side effects. No data fetching.
Turn a provider's parsed JSON body into PairRecords.

Shapes:
  dexscreener    { "pairs": [ {dexId, baseToken, priceUsd, fdv, ...} ] }  or a bare list
  geckoterminal  { "data":  [ {id, attributes, relationships.dex} ] }

A body without the expected list yields []. Items that are not objects
or carry no venue id are dropped; every other field is optional.
"""

import math
from datetime import datetime, timezone
from typing import Any, List, Optional

from pulse_engine.models.pair_record import PairRecord

GECKO_POOL_URL = "https://www.geckoterminal.com/solana/pools/{address}"

# Provider spellings of the same venue
VENUE_ALIASES = {
    "pump-fun":  "pumpfun",
    "pump_fun":  "pumpfun",
    "pump-swap": "pumpswap",
    "pump_swap": "pumpswap",
}


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _to_ms(value: Any) -> Optional[int]:
    """Epoch ms from a number (ms) or an ISO-8601 string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) and value > 0 else None
    if isinstance(value, str) and value:
        try:
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return int(ts.timestamp() * 1000)
    return None


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _venue(raw: Any) -> str:
    venue = _str(raw).lower()
    return VENUE_ALIASES.get(venue, venue)


# ── DexScreener ───────────────────────────────────────────────
def from_dexscreener(body: Any) -> List[PairRecord]:
    items = body if isinstance(body, list) else _dict(body).get("pairs")
    if not isinstance(items, list):
        return []

    records = []
    for p in items:
        if not isinstance(p, dict):
            continue
        venue = _venue(p.get("dexId"))
        if not venue:
            continue
        base = _dict(p.get("baseToken"))
        records.append(PairRecord(
            source_id=venue,
            base_symbol=_str(base.get("symbol")),
            base_name=_str(base.get("name")),
            price_usd=_to_float(p.get("priceUsd")),
            fdv_usd=_to_float(p.get("fdv")),
            market_cap_usd=_to_float(p.get("marketCap")),
            created_at=_to_ms(p.get("pairCreatedAt")),
            logo_url=_str(_dict(p.get("info")).get("imageUrl")) or None,
            detail_url=_str(p.get("url")),
            pair_address=_str(p.get("pairAddress")) or None,
        ))
    return records


# ── GeckoTerminal ─────────────────────────────────────────────
def _gecko_symbol(attrs: dict) -> str:
    # pool names look like "SYM / SOL"
    symbol = _str(attrs.get("token_symbol"))
    if symbol:
        return symbol
    name = _str(attrs.get("name"))
    return name.split(" / ")[0].strip() if name else ""


def from_geckoterminal(body: Any) -> List[PairRecord]:
    items = _dict(body).get("data")
    if not isinstance(items, list):
        return []

    records = []
    for p in items:
        if not isinstance(p, dict):
            continue
        attrs = _dict(p.get("attributes"))
        dex   = _dict(_dict(_dict(p.get("relationships")).get("dex")).get("data"))
        venue = _venue(dex.get("id") or attrs.get("dex_id"))
        if not venue:
            continue

        address = _str(attrs.get("address"))
        if not address:
            pool_id = _str(p.get("id"))
            address = pool_id.split("_", 1)[1] if "_" in pool_id else pool_id

        records.append(PairRecord(
            source_id=venue,
            base_symbol=_gecko_symbol(attrs),
            base_name=_str(attrs.get("token_name")) or _str(attrs.get("name")),
            price_usd=_to_float(attrs.get("base_token_price_usd") or attrs.get("price_in_usd")),
            fdv_usd=_to_float(attrs.get("fdv_usd")),
            market_cap_usd=_to_float(attrs.get("market_cap_usd")),
            created_at=_to_ms(attrs.get("pool_created_at") or attrs.get("created_at")),
            logo_url=_str(attrs.get("token_logo_url")) or None,
            detail_url=GECKO_POOL_URL.format(address=address) if address else "",
            pair_address=address or None,
        ))
    return records


NORMALISERS = {
    "dexscreener":   from_dexscreener,
    "geckoterminal": from_geckoterminal,
}
