import asyncio

import pytest

from pulse_engine.cache.snapshot_cache import CacheState
from pulse_engine.models.errors import RateLimited, UpstreamUnavailable
from pulse_engine.orchestrator.coalescer import Coalescer

from helpers import FakeClock, make_pair


class GatedFetch:
    """Upstream call that blocks until released."""

    def __init__(self, pairs=None, error=None):
        self.pairs = pairs if pairs is not None else [make_pair(symbol="A")]
        self.error = error
        self.calls = 0
        self.release = asyncio.Event()

    async def __call__(self):
        self.calls += 1
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.pairs


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_upstream_call():
    fetch = GatedFetch()
    coalescer = Coalescer(CacheState(ttl=30, clock=FakeClock()), fetch)

    tasks = [asyncio.create_task(coalescer.get_or_refresh()) for _ in range(25)]
    await _settle()
    assert coalescer.refreshing
    fetch.release.set()
    results = await asyncio.gather(*tasks)

    assert fetch.calls == 1
    assert coalescer.refresh_count == 1
    assert all(r is results[0] for r in results)
    assert [p.base_symbol for p in results[0].pairs] == ["A"]
    assert not coalescer.refreshing


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_failure():
    fetch = GatedFetch(error=RateLimited("slow down", retry_after=5))
    coalescer = Coalescer(CacheState(ttl=30, clock=FakeClock()), fetch)

    tasks = [asyncio.create_task(coalescer.get_or_refresh()) for _ in range(10)]
    await _settle()
    fetch.release.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert fetch.calls == 1
    assert all(isinstance(r, RateLimited) for r in results)
    assert all(r is results[0] for r in results)
    assert coalescer.cache.entry is None
    assert coalescer.cache.in_flight is None


@pytest.mark.asyncio
async def test_fresh_cache_skips_upstream_until_ttl_expires():
    clock = FakeClock(1_000.0)
    calls = []

    async def fetch():
        calls.append(clock.now)
        return [make_pair(symbol=f"T{len(calls)}")]

    coalescer = Coalescer(CacheState(ttl=30, clock=clock), fetch)

    first = await coalescer.get_or_refresh()
    clock.advance(29)
    second = await coalescer.get_or_refresh()
    assert len(calls) == 1
    assert second.pairs == first.pairs

    clock.advance(1)
    third = await coalescer.get_or_refresh()
    assert len(calls) == 2
    assert [p.base_symbol for p in third.pairs] == ["T2"]
    assert third.fetched_at == 1_030.0


@pytest.mark.asyncio
async def test_failure_serves_prior_snapshot_without_touching_cache():
    clock = FakeClock(1_000.0)
    cache = CacheState(ttl=30, clock=clock)
    prior = cache.replace([make_pair(symbol="OLD")])
    clock.advance(120)

    async def fetch():
        raise UpstreamUnavailable("HTTP 502", status_code=502)

    coalescer = Coalescer(cache, fetch)
    snapshot = await coalescer.get_or_refresh()

    assert snapshot.stale
    assert snapshot.pairs is prior.pairs
    assert snapshot.fetched_at == 1_000.0
    assert isinstance(snapshot.error, UpstreamUnavailable)
    assert cache.entry is prior
    assert coalescer.last_error is snapshot.error


@pytest.mark.asyncio
async def test_failure_without_snapshot_propagates():
    async def fetch():
        raise UpstreamUnavailable("connection refused")

    coalescer = Coalescer(CacheState(ttl=30, clock=FakeClock()), fetch)
    with pytest.raises(UpstreamUnavailable):
        await coalescer.get_or_refresh()


@pytest.mark.asyncio
async def test_stale_fallback_retries_on_next_call():
    clock = FakeClock(0.0)
    cache = CacheState(ttl=30, clock=clock)
    cache.replace([make_pair(symbol="OLD")])
    clock.advance(60)
    outcomes = [UpstreamUnavailable("down"), [make_pair(symbol="NEW")]]
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    coalescer = Coalescer(cache, fetch)
    stale = await coalescer.get_or_refresh()
    fresh = await coalescer.get_or_refresh()

    assert calls == 2
    assert stale.stale and [p.base_symbol for p in stale.pairs] == ["OLD"]
    assert not fresh.stale and [p.base_symbol for p in fresh.pairs] == ["NEW"]
    assert coalescer.last_error is None


@pytest.mark.asyncio
async def test_refresh_timeout_counts_as_unavailable():
    async def fetch():
        await asyncio.sleep(5)
        return []

    coalescer = Coalescer(CacheState(ttl=30, clock=FakeClock()), fetch, refresh_timeout=0.05)
    with pytest.raises(UpstreamUnavailable, match="timed out"):
        await coalescer.get_or_refresh()
    assert coalescer.cache.in_flight is None


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_refresh():
    fetch = GatedFetch()
    coalescer = Coalescer(CacheState(ttl=30, clock=FakeClock()), fetch)

    quitter = asyncio.create_task(coalescer.get_or_refresh())
    await _settle()
    quitter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await quitter

    stayer = asyncio.create_task(coalescer.get_or_refresh())
    await _settle()
    fetch.release.set()
    snapshot = await stayer

    assert fetch.calls == 1
    assert [p.base_symbol for p in snapshot.pairs] == ["A"]


@pytest.mark.asyncio
async def test_empty_result_is_cached_as_success():
    calls = 0

    async def fetch():
        nonlocal calls
        calls += 1
        return []

    coalescer = Coalescer(CacheState(ttl=30, clock=FakeClock()), fetch)
    first = await coalescer.get_or_refresh()
    second = await coalescer.get_or_refresh()
    assert first.pairs == () and second.pairs == ()
    assert calls == 1
