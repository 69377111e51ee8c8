import pytest

from formguard.infra import rate_limit


@pytest.mark.asyncio
async def test_hit_counts_within_window(fake_redis) -> None:
	assert await rate_limit.hit("moderation", "abc", window_seconds=60) == 1
	assert await rate_limit.hit("moderation", "abc", window_seconds=60) == 2
	assert await rate_limit.hit("moderation", "other", window_seconds=60) == 1

	ttl = await fake_redis.ttl("rl:moderation:abc")
	assert 0 < ttl <= 60


@pytest.mark.asyncio
async def test_allow_respects_limit() -> None:
	results = [await rate_limit.allow("moderation", "abc", limit=2) for _ in range(3)]

	assert results == [True, True, False]
	assert not await rate_limit.allow("moderation", "xyz", limit=0)


@pytest.mark.asyncio
async def test_reset_clears_counter() -> None:
	await rate_limit.hit("moderation", "abc")
	await rate_limit.reset("moderation", "abc")

	assert await rate_limit.hit("moderation", "abc") == 1
