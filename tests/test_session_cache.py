"""Tests for TTL refresh, single-flight loading, history and eviction."""

import asyncio

import pytest

from helpers import ME, NOW, hours, make_event
from prestige_assistant.session_cache import SessionCache
from prestige_assistant.snapshot import build_snapshot


class CountingLoader:
    def __init__(self, gate: asyncio.Event | None = None) -> None:
        self.calls: list[tuple[str, str]] = []
        self.gate = gate
        self.fail = False

    async def __call__(self, identity: str, auth_token: str):
        self.calls.append((identity, auth_token))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RuntimeError("backend exploded")
        events = [make_event(f"E{len(self.calls)}", start=NOW + hours(1))]
        return build_snapshot(ME, events, [], NOW)


@pytest.fixture
def loader():
    return CountingLoader()


def _cache(loader, clock, **kwargs):
    kwargs.setdefault("ttl_seconds", 300)
    kwargs.setdefault("max_history_pairs", 6)
    kwargs.setdefault("max_sessions", 100)
    return SessionCache(loader, clock=clock, **kwargs)


class TestRefresh:
    @pytest.mark.asyncio
    async def test_first_access_loads(self, loader, clock):
        cache = _cache(loader, clock)
        state = await cache.get_fresh("42", "tok")
        assert loader.calls == [("42", "tok")]
        assert state.fresh
        assert state.profile == ME
        assert [e.name for e in state.events] == ["E1"]
        assert state.snapshot.counts["totalEvents"] == 1

    @pytest.mark.asyncio
    async def test_within_ttl_reuses_snapshot(self, loader, clock):
        cache = _cache(loader, clock)
        await cache.get_fresh("42")
        clock.advance(300)
        await cache.get_fresh("42")
        assert len(loader.calls) == 1

    @pytest.mark.asyncio
    async def test_stale_after_ttl(self, loader, clock):
        cache = _cache(loader, clock)
        await cache.get_fresh("42")
        clock.advance(301)
        state = await cache.get_fresh("42")
        assert len(loader.calls) == 2
        assert [e.name for e in state.events] == ["E2"]
        assert state.last_refresh == clock.now

    @pytest.mark.asyncio
    async def test_identities_are_independent(self, loader, clock):
        cache = _cache(loader, clock)
        await cache.get_fresh("a")
        await cache.get_fresh("b")
        assert [c[0] for c in loader.calls] == ["a", "b"]
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_refresh(self, loader, clock):
        cache = _cache(loader, clock)
        await cache.get_fresh("42")
        cache.invalidate("42")
        await cache.get_fresh("42")
        assert len(loader.calls) == 2

    @pytest.mark.asyncio
    async def test_failed_load_propagates_and_stays_stale(self, loader, clock):
        cache = _cache(loader, clock)
        loader.fail = True
        with pytest.raises(RuntimeError):
            await cache.get_fresh("42")
        loader.fail = False
        state = await cache.get_fresh("42")
        assert state.fresh
        assert len(loader.calls) == 2


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_concurrent_turns_share_one_refresh(self, clock):
        gate = asyncio.Event()
        loader = CountingLoader(gate)
        cache = _cache(loader, clock)

        tasks = [asyncio.create_task(cache.get_fresh("42")) for _ in range(5)]
        await asyncio.sleep(0)
        gate.set()
        states = await asyncio.gather(*tasks)

        assert len(loader.calls) == 1
        assert all(s is states[0] for s in states)

    @pytest.mark.asyncio
    async def test_different_identities_refresh_concurrently(self, clock):
        gate = asyncio.Event()
        loader = CountingLoader(gate)
        cache = _cache(loader, clock)

        tasks = [asyncio.create_task(cache.get_fresh(i)) for i in ("a", "b")]
        await asyncio.sleep(0)
        assert len(loader.calls) == 2
        gate.set()
        await asyncio.gather(*tasks)


class TestHistory:
    def test_keeps_most_recent_pairs(self, loader, clock):
        cache = _cache(loader, clock, max_history_pairs=6)
        for i in range(10):
            cache.append_exchange("42", f"q{i}", f"a{i}")

        history = cache.history("42")
        assert len(history) == 12
        assert history[0] == {"role": "user", "parts": [{"text": "q4"}]}
        assert history[1] == {"role": "model", "parts": [{"text": "a4"}]}
        assert history[-1] == {"role": "model", "parts": [{"text": "a9"}]}

    def test_history_is_a_copy(self, loader, clock):
        cache = _cache(loader, clock)
        cache.append_exchange("42", "q", "a")
        cache.history("42").clear()
        assert len(cache.history("42")) == 2

    def test_unknown_identity_has_no_history(self, loader, clock):
        assert _cache(loader, clock).history("nobody") == []

    @pytest.mark.asyncio
    async def test_refresh_keeps_history(self, loader, clock):
        cache = _cache(loader, clock)
        await cache.get_fresh("42")
        cache.append_exchange("42", "q", "a")
        clock.advance(1000)
        await cache.get_fresh("42")
        assert len(cache.history("42")) == 2


class TestEviction:
    @pytest.mark.asyncio
    async def test_least_recently_used_evicted(self, loader, clock):
        cache = _cache(loader, clock, max_sessions=2)
        await cache.get_fresh("a")
        await cache.get_fresh("b")
        await cache.get_fresh("a")
        await cache.get_fresh("c")

        assert "a" in cache
        assert "c" in cache
        assert "b" not in cache
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_refreshing_session_is_not_evicted(self, clock):
        gate = asyncio.Event()
        loader = CountingLoader(gate)
        cache = _cache(loader, clock, max_sessions=1)

        first = asyncio.create_task(cache.get_fresh("a"))
        await asyncio.sleep(0)
        second = asyncio.create_task(cache.get_fresh("b"))
        await asyncio.sleep(0)
        assert "a" in cache
        assert len(cache) == 2

        gate.set()
        await asyncio.gather(first, second)
        await cache.get_fresh("a")
        assert [c[0] for c in loader.calls].count("a") == 1

        await cache.get_fresh("c")
        assert len(cache) == 1
        assert "c" in cache


def test_defaults_come_from_settings(loader):
    cache = SessionCache(loader)
    assert cache.ttl_seconds == 300
    assert cache.max_history_pairs == 6
    assert cache.max_sessions == 10000
