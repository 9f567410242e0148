import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from abuseguard.abuse.domain import container
from abuseguard.abuse.domain.ledger import InMemoryAbuseLedger
from abuseguard.abuse.domain.policy import PolicyConfig
from abuseguard.infra import postgres
from abuseguard.infra.redis import redis_client, set_redis_client
from abuseguard.main import app
from abuseguard.settings import settings

FRONTEND_URL = "https://cook.example"


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	original = redis_client.client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		await client.flushall()
		set_redis_client(original)


@pytest.fixture(autouse=True)
def patch_postgres(monkeypatch):
	async def _noop():
		return None

	monkeypatch.setattr(postgres, "init_pool", _noop)
	monkeypatch.setattr(postgres, "close_pool", _noop)


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Dev mode lets API tests authenticate with X-User-Id/X-User-Roles headers."""
	original_env = settings.environment
	original_backend = settings.abuse_ledger_backend
	settings.environment = "dev"
	settings.abuse_ledger_backend = "memory"
	try:
		yield
	finally:
		settings.environment = original_env
		settings.abuse_ledger_backend = original_backend


@pytest.fixture
def ledger() -> InMemoryAbuseLedger:
	return InMemoryAbuseLedger()


@pytest.fixture(autouse=True)
def abuse_container(ledger: InMemoryAbuseLedger):
	container.configure(
		policy=PolicyConfig.default(),
		redis_proxy=redis_client,
		ledger=ledger,
		frontend_url=FRONTEND_URL,
	)
	yield container


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
