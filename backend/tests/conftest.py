import sys
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from formguard.infra import postgres
from formguard.main import app
from formguard.settings import settings
from formguard.spam.domain import container as spam_container


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from formguard.infra.redis import redis_client, set_redis_client
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		set_redis_client(original)
		await client.flushall()


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def fresh_spam_container():
	spam_container.reset()
	yield
	spam_container.reset()


@pytest.fixture
def admin_token():
	original = settings.obs_admin_token
	settings.obs_admin_token = "test-admin-token"
	try:
		yield "test-admin-token"
	finally:
		settings.obs_admin_token = original


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
