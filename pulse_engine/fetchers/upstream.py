"""
Pulse Engine — Upstream Client
────────────────────────────────
One refresh = one pass over the configured query strategies.
Each strategy is a URL plus the provider shape its body comes in.
Strategies are tried in order; the first non-empty result wins.

Returns normalised PairRecords. Raises FetchError. Does NOT cache:
caching and coalescing belong to the orchestrator.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Tuple

import httpx

from pulse_engine.fetchers.normalisers import NORMALISERS, from_dexscreener
from pulse_engine.models.errors import (
    FetchError, RateLimited, UpstreamMalformed, UpstreamUnavailable,
)
from pulse_engine.models.pair_record import PairRecord

log = logging.getLogger("pulse.upstream")

REQUEST_TIMEOUT = 8

# DexScreener rejects default client user agents
HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}

PAIR_LOOKUP_URL = "https://api.dexscreener.com/latest/dex/pairs/solana/{mint}"


@dataclass(frozen=True)
class QueryStrategy:
    SHAPES = tuple(NORMALISERS)

    url:   str
    shape: str = "dexscreener"


def _retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _normalise(normaliser: Callable[[Any], List[PairRecord]], body: Any,
               url: str) -> List[PairRecord]:
    """Run a normaliser; anything it chokes on becomes UpstreamMalformed."""
    try:
        return normaliser(body)
    except (TypeError, ValueError, OverflowError) as e:
        raise UpstreamMalformed(
            f"Unreadable body from {url[:60]}: {e}", body_preview=str(body)
        ) from e


class UpstreamClient:

    def __init__(self, strategies: Iterable[QueryStrategy],
                 timeout: float = REQUEST_TIMEOUT,
                 client: Optional[httpx.AsyncClient] = None):
        self.strategies = list(strategies)
        self.timeout    = timeout
        self._client    = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                timeout=self.timeout,
            )
            self._owns_client = True
        return self._client

    async def aclose(self):
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    # ── HTTP ──────────────────────────────────────────────────
    async def _get_json(self, url: str) -> Any:
        """GET url and parse the body. Raises FetchError, never returns partial data."""
        client = self._get_client()
        try:
            r = await client.get(url, headers=HEADERS, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(f"Timeout fetching {url[:60]}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise UpstreamUnavailable(f"Transport error for {url[:60]}: {e}") from e

        text = r.text
        if r.status_code == 429:
            raise RateLimited(
                f"Rate limited by {r.url.host}", 429, text,
                retry_after=_retry_after(r.headers.get("Retry-After")),
            )
        if not r.is_success:
            raise UpstreamUnavailable(f"HTTP {r.status_code} from {url[:60]}", r.status_code, text)

        try:
            return json.loads(text)
        except ValueError as e:
            raise UpstreamMalformed(
                f"Non-JSON body from {url[:60]}", r.status_code, text
            ) from e

    # ── Public ────────────────────────────────────────────────
    async def fetch(self) -> Tuple[PairRecord, ...]:
        """
        Try each strategy in order.
        - first non-empty result → returned
        - all empty (at least one succeeded) → ()
        - all failed → the last FetchError is raised
        """
        last_error: Optional[FetchError] = None
        any_succeeded = False

        for strategy in self.strategies:
            try:
                body  = await self._get_json(strategy.url)
                pairs = _normalise(NORMALISERS[strategy.shape], body, strategy.url)
            except FetchError as e:
                log.warning(f"{strategy.shape} query failed: {e.message}")
                last_error = e
                continue

            any_succeeded = True
            if pairs:
                log.info(f"{strategy.shape}: {len(pairs)} pairs from {strategy.url[:60]}")
                return tuple(pairs)
            log.info(f"{strategy.shape}: no pairs from {strategy.url[:60]} — trying next query")

        if last_error is not None and not any_succeeded:
            raise last_error
        return ()

    async def fetch_pair(self, mint: str) -> Optional[PairRecord]:
        """Single-pair lookup. None when the upstream knows no such pair."""
        url   = PAIR_LOOKUP_URL.format(mint=mint)
        body  = await self._get_json(url)
        pairs = _normalise(from_dexscreener, body, url)
        if not pairs and isinstance(body, dict) and isinstance(body.get("pair"), dict):
            pairs = _normalise(from_dexscreener, [body["pair"]], url)
        return pairs[0] if pairs else None
