"""FastAPI application wiring for the formguard service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from formguard import __version__
from formguard.api import ops
from formguard.infra import postgres
from formguard.infra.redis import redis_client
from formguard.obs import init as obs_init
from formguard.spam import configure_postgres as configure_spam
from formguard.spam import router as spam_router
from formguard.spam.domain import container as spam_container
from formguard.spam.infra.log_repo import PostgresLogStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	pool = await postgres.init_pool()
	if pool is not None:
		await PostgresLogStore(pool).ensure_schema()
		configure_spam(pool, redis_client)
	else:
		logger.warning("postgres_url not configured; spam log kept in memory")
	try:
		yield
	finally:
		await spam_container.aclose()
		await postgres.close_pool()


def create_app() -> FastAPI:
	app = FastAPI(title="formguard", version=__version__, lifespan=lifespan)
	obs_init(app)
	app.include_router(ops.router, tags=["ops"])
	app.include_router(spam_router, tags=["spam"])
	return app


app = create_app()
