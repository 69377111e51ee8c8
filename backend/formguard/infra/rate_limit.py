"""Redis-backed rate limiting utilities."""

from __future__ import annotations

from formguard.infra.redis import RedisProxy, redis_client


async def hit(
	kind: str,
	actor_id: str,
	*,
	window_seconds: int = 60,
	redis: RedisProxy | None = None,
) -> int:
	"""Count one operation and return the running total for the current window.

	The window opens on the first hit (``SET NX EX``) and is not extended by
	later hits, so the counter expires ``window_seconds`` after the first call.
	"""

	client = redis or redis_client
	window = max(1, int(window_seconds))
	key = f"rl:{kind}:{actor_id}"
	async with client.pipeline(transaction=True) as pipe:
		pipe.set(key, 0, ex=window, nx=True)
		pipe.incr(key)
		_, count = await pipe.execute()
	return int(count)


async def allow(
	kind: str,
	actor_id: str,
	*,
	limit: int,
	window_seconds: int = 60,
	redis: RedisProxy | None = None,
) -> bool:
	"""Return True when the operation is still within the allowed budget."""

	if limit <= 0:
		return False
	count = await hit(kind, actor_id, window_seconds=window_seconds, redis=redis)
	return count <= limit


async def reset(kind: str, actor_id: str, *, redis: RedisProxy | None = None) -> None:
	client = redis or redis_client
	await client.delete(f"rl:{kind}:{actor_id}")
