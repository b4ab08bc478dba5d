"""Tests for the persisted credential cache."""

import asyncio

import pytest

from myousic.core.models import SystemSetting
from myousic.worker.credentials import CredentialCache


class Clock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_fetcher(lifetime=3600.0):
    calls = []

    async def fetch():
        calls.append(1)
        await asyncio.sleep(0)
        return f"token-{len(calls)}", lifetime

    return fetch, calls


@pytest.mark.asyncio
async def test_reuses_valid_token():
    fetch, calls = make_fetcher()
    cache = CredentialCache("spotify_token", fetch, clock=Clock())
    assert await cache.get() == "token-1"
    assert await cache.get() == "token-1"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_refreshes_when_less_than_a_minute_remains():
    clock = Clock()
    fetch, calls = make_fetcher(lifetime=3600.0)
    cache = CredentialCache("spotify_token", fetch, clock=clock)
    await cache.get()

    clock.now += 3600 - 59
    assert await cache.get() == "token-2"
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_concurrent_callers_trigger_one_refresh():
    fetch, calls = make_fetcher()
    cache = CredentialCache("spotify_token", fetch, clock=Clock())
    tokens = await asyncio.gather(*(cache.get() for _ in range(5)))
    assert set(tokens) == {"token-1"}
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_persists_and_reloads_from_system_settings(session_factory):
    clock = Clock()
    fetch, calls = make_fetcher()
    first = CredentialCache("spotify_token", fetch, session_factory=session_factory, clock=clock)
    await first.get()

    async with session_factory() as session:
        row = await session.get(SystemSetting, "spotify_token")
        assert row.value == "token-1"
        assert row.expires_at == pytest.approx(clock.now + 3600)

    # A new process picks the stored token up instead of fetching
    second = CredentialCache("spotify_token", fetch, session_factory=session_factory, clock=clock)
    assert await second.get() == "token-1"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_expired_stored_token_is_replaced(session_factory):
    clock = Clock()
    async with session_factory() as session:
        session.add(SystemSetting(key="spotify_token", value="old", expires_at=clock.now + 30))
        await session.commit()

    fetch, calls = make_fetcher()
    cache = CredentialCache("spotify_token", fetch, session_factory=session_factory, clock=clock)
    assert await cache.get() == "token-1"

    async with session_factory() as session:
        row = await session.get(SystemSetting, "spotify_token")
        assert row.value == "token-1"


@pytest.mark.asyncio
async def test_invalidate_skips_stored_token(session_factory):
    fetch, calls = make_fetcher()
    cache = CredentialCache("spotify_token", fetch, session_factory=session_factory, clock=Clock())
    await cache.get()
    cache.invalidate()
    assert await cache.get() == "token-2"
    # Back to normal reuse afterwards
    assert await cache.get() == "token-2"


@pytest.mark.asyncio
async def test_storage_failure_still_returns_token():
    class BrokenFactory:
        def __call__(self):
            raise RuntimeError("database is locked")

    fetch, _ = make_fetcher()
    cache = CredentialCache("spotify_token", fetch, session_factory=BrokenFactory(), clock=Clock())
    assert await cache.get() == "token-1"
