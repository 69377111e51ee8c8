from datetime import timedelta

import pytest

from formguard.spam.domain.strikes import InMemoryStrikeStore, StrikeLedger
from formguard.spam.infra.strike_repo import RedisStrikeStore


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_in_memory_strikes_expire() -> None:
    clock = FakeClock()
    ledger = StrikeLedger(InMemoryStrikeStore(clock=clock), ttl=timedelta(minutes=15))

    state = await ledger.record("contact", "203.0.113.7")
    assert state.count == 1
    assert (await ledger.current("contact", "203.0.113.7")).active

    clock.now += 15 * 60 + 1

    assert not (await ledger.current("contact", "203.0.113.7")).active


@pytest.mark.asyncio
async def test_strikes_are_scoped_per_form_and_submitter() -> None:
    ledger = StrikeLedger(InMemoryStrikeStore())

    await ledger.record("contact", "203.0.113.7")

    assert (await ledger.current("contact", "203.0.113.7")).count == 1
    assert (await ledger.current("newsletter", "203.0.113.7")).count == 0
    assert (await ledger.current("contact", "198.51.100.2")).count == 0


@pytest.mark.asyncio
async def test_clear_removes_strike() -> None:
    ledger = StrikeLedger(InMemoryStrikeStore())
    await ledger.record("contact", "203.0.113.7")

    await ledger.clear("contact", "203.0.113.7")

    assert (await ledger.current("contact", "203.0.113.7")).count == 0


def test_key_does_not_contain_raw_submitter() -> None:
    ledger = StrikeLedger(InMemoryStrikeStore())

    key = ledger.key("contact", "jane@acme-corp.com")

    assert key.startswith("spam:strike:contact:")
    assert "jane" not in key


@pytest.mark.asyncio
async def test_redis_store_counts_and_sets_ttl(fake_redis) -> None:
    store = RedisStrikeStore(fake_redis)
    ledger = StrikeLedger(store, ttl=timedelta(seconds=900))
    key = ledger.key("contact", "203.0.113.7")

    await ledger.record("contact", "203.0.113.7")
    await ledger.record("contact", "203.0.113.7")

    assert await store.get(key) == 2
    remaining = await store.ttl(key)
    assert remaining is not None and 0 < remaining <= 900

    state = await ledger.current("contact", "203.0.113.7")
    assert state.count == 2
    assert state.expires_at is not None

    await ledger.clear("contact", "203.0.113.7")
    assert await store.get(key) == 0
    assert await store.ttl(key) is None


@pytest.mark.asyncio
async def test_redis_store_tolerates_garbage(fake_redis) -> None:
    await fake_redis.set("spam:strike:contact:bogus", "not-a-number")

    assert await RedisStrikeStore(fake_redis).get("spam:strike:contact:bogus") == 0
