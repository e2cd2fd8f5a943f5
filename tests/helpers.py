import asyncio
from typing import Iterable, List, Optional

from pulse_engine.models.pair_record import PairRecord


def make_pair(source_id: str = "pumpfun", symbol: str = "TKN", fdv: Optional[float] = None,
              market_cap: Optional[float] = None, url: Optional[str] = None) -> PairRecord:
    return PairRecord(
        source_id=source_id,
        base_symbol=symbol,
        base_name=f"{symbol} Token",
        price_usd=0.0001,
        fdv_usd=fdv,
        market_cap_usd=market_cap,
        created_at=None,
        detail_url=url if url is not None else f"https://dexscreener.com/solana/{symbol.lower()}",
    )


def dex_pair(dex_id: str, symbol: str, fdv=None, **extra) -> dict:
    p = {
        "chainId": "solana",
        "dexId": dex_id,
        "url": f"https://dexscreener.com/solana/{symbol.lower()}",
        "pairAddress": f"{symbol}pair",
        "baseToken": {"address": f"{symbol}mint", "name": f"{symbol} Token", "symbol": symbol},
        "priceUsd": "0.00001234",
        "fdv": fdv,
        "marketCap": fdv,
        "pairCreatedAt": 1_700_000_000_000,
        "info": {"imageUrl": f"https://img.example/{symbol}.png"},
    }
    p.update(extra)
    return p


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeUpstream:
    """Stands in for UpstreamClient: counts calls, optional delay or error."""

    def __init__(self, pairs: Iterable[PairRecord] = (), delay: float = 0.0,
                 error: Optional[Exception] = None):
        self.pairs = list(pairs)
        self.delay = delay
        self.error = error
        self.calls = 0
        self.lookups: List[str] = []
        self.closed = False

    async def fetch(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return tuple(self.pairs)

    async def fetch_pair(self, mint: str):
        self.lookups.append(mint)
        if self.error is not None:
            raise self.error
        for p in self.pairs:
            if p.pair_address == mint or p.base_symbol == mint:
                return p
        return None

    async def aclose(self):
        self.closed = True
