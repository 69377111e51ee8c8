"""Optional asyncpg pool backing the persistent spam log."""

from __future__ import annotations

import logging
from typing import Optional

import asyncpg

from formguard.settings import settings

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None


async def init_pool() -> Optional[asyncpg.Pool]:
	"""Open the pool once; returns None when no Postgres URL is configured."""
	global _pool
	if _pool is not None or not settings.postgres_url:
		return _pool
	_pool = await asyncpg.create_pool(
		dsn=settings.postgres_url,
		min_size=0,
		max_size=settings.postgres_max_pool_size,
		command_timeout=settings.postgres_command_timeout,
	)
	logger.info("postgres pool opened", extra={"max_size": settings.postgres_max_pool_size})
	return _pool


async def get_pool() -> asyncpg.Pool:
	pool = await init_pool()
	if pool is None:
		raise RuntimeError("postgres_url is not configured")
	return pool


async def close_pool() -> None:
	global _pool
	pool, _pool = _pool, None
	if pool is not None:
		await pool.close()
