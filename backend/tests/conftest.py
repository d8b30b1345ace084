import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from sentinel.detection.domain import container
from sentinel.detection.domain.accounts import Account, AccountStatus, InMemoryAccountRepository
from sentinel.detection.domain.config import DetectionConfig
from sentinel.infra import postgres
from sentinel.main import app
from sentinel.settings import settings


class FrozenClock:
	"""Manually advanced UTC clock injected into detection services."""

	def __init__(self, start: datetime) -> None:
		self.now = start

	def __call__(self) -> datetime:
		return self.now

	def advance(self, **kwargs: float) -> datetime:
		self.now = self.now + timedelta(**kwargs)
		return self.now


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from sentinel.infra.redis import redis_client, set_redis_client

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
def force_test_settings():
	"""Admin API tests authenticate via X-User-Id headers, accepted only in dev."""
	original_env = settings.environment
	settings.environment = "dev"
	try:
		yield
	finally:
		settings.environment = original_env


@pytest.fixture
def clock() -> FrozenClock:
	return FrozenClock(datetime(2025, 3, 14, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def accounts(clock: FrozenClock) -> InMemoryAccountRepository:
	repo = InMemoryAccountRepository()
	created = clock() - timedelta(days=90)
	for actor_id in ("u1", "u2", "u3"):
		repo.add(
			Account(
				id=actor_id,
				status=AccountStatus.ACTIVE,
				created_at=created,
				updated_at=created,
				display_name=f"Artist {actor_id}",
			)
		)
	return repo


@pytest.fixture
def services(clock: FrozenClock, accounts: InMemoryAccountRepository):
	"""In-memory detection services wired to the frozen clock and installed globally."""
	original = container.get_services()
	built = container.build_services(config=DetectionConfig(), accounts=accounts, clock=clock)
	container.configure(built)
	try:
		yield built
	finally:
		container.configure(original)


@pytest_asyncio.fixture
async def api_client():
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
