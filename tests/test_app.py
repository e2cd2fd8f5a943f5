import pytest
from fastapi.testclient import TestClient

from app import create_app
from pulse_engine.api.pulse_endpoint import PulseService
from pulse_engine.config import Settings
from pulse_engine.models.errors import RateLimited, UpstreamUnavailable

from helpers import FakeClock, FakeUpstream, make_pair


def _client(upstream):
    service = PulseService(Settings(category_size=5), upstream=upstream,
                           clock=FakeClock(1_700_000_000.0))
    return TestClient(create_app(service))


@pytest.fixture
def pairs():
    return [make_pair("pumpfun", "NEW", fdv=20_000), make_pair("pumpswap", "MIG")]


def test_root_and_health(pairs):
    with _client(FakeUpstream(pairs)) as client:
        assert client.get("/").json()["ok"] is True
        health = client.get("/health").json()
        assert health["status"] == "healthy"
        assert health["cache"]["pairs"] == 0


def test_pulse_ok(pairs):
    upstream = FakeUpstream(pairs)
    with _client(upstream) as client:
        r = client.get("/api/pulse")
        assert r.status_code == 200
        body = r.json()
        assert body["ok"] is True
        assert body["finalStretch"][0]["symbol"] == "NEW"
        assert body["migrated"][0]["symbol"] == "MIG"
        client.get("/api/pulse")
    assert upstream.calls == 1
    assert upstream.closed


@pytest.mark.parametrize("path, category", [
    ("/api/new-pairs", "NewPairs"),
    ("/api/final-stretch", "FinalStretch"),
    ("/api/migrated", "Migrated"),
    ("/api/category/final_stretch", "FinalStretch"),
])
def test_category_routes(pairs, path, category):
    with _client(FakeUpstream(pairs)) as client:
        r = client.get(path)
        assert r.status_code == 200
        assert r.json()["category"] == category


def test_unknown_category_is_404(pairs):
    with _client(FakeUpstream(pairs)) as client:
        assert client.get("/api/category/trending").status_code == 404


def test_upstream_failure_without_cache_is_503():
    with _client(FakeUpstream(error=UpstreamUnavailable("HTTP 500", status_code=500))) as client:
        r = client.get("/api/pulse")
        assert r.status_code == 503
        assert r.json() == {"ok": False, "error": "HTTP 500", "kind": "upstream_unavailable",
                            "status": 500}
        assert client.get("/api/migrated").status_code == 503


def test_rate_limited_is_429_with_retry_after():
    with _client(FakeUpstream(error=RateLimited("Rate limited", retry_after=20))) as client:
        r = client.get("/api/new-pairs")
        assert r.status_code == 429
        assert r.headers["Retry-After"] == "20"


def test_pair_lookup_routes():
    pair = make_pair("pumpswap", "LOOK")
    with _client(FakeUpstream([pair])) as client:
        assert client.get("/api/pairs/LOOK").json()["coin"]["symbol"] == "LOOK"
        assert client.get("/api/pairs/UNKNOWN").status_code == 404

    with _client(FakeUpstream(error=UpstreamUnavailable("down"))) as client:
        assert client.get("/api/pairs/LOOK").status_code == 502
