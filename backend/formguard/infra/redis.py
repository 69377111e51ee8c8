"""Shared Redis handle for strike counters and moderation budgets."""

from __future__ import annotations

import redis.asyncio as redis

from formguard.settings import settings


class RedisProxy:
	"""Forwards every attribute to the current client.

	Stores keep a reference to the proxy, so :func:`set_redis_client` swaps
	the backing connection (fakeredis in tests) for all of them at once.
	"""

	def __init__(self, client: redis.Redis):
		self._client = client

	@property
	def client(self) -> redis.Redis:
		return self._client

	def set_client(self, client: redis.Redis) -> None:
		self._client = client

	def __getattr__(self, item):
		return getattr(self._client, item)


# connections are opened lazily on first command
redis_client = RedisProxy(redis.from_url(settings.redis_url, decode_responses=True))


def set_redis_client(client: redis.Redis) -> None:
	redis_client.set_client(client)
