import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from spotit.api import deps
from spotit.domain.spots.storage import MemorySpotBackend
from spotit.infra import postgres
from spotit.main import app
from spotit.settings import settings


T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(autouse=True)
async def fake_redis():
	from spotit.infra.redis import redis_client, set_redis_client
	original = redis_client._client
	client = FakeRedis(decode_responses=True)
	set_redis_client(client)
	try:
		yield client
	finally:
		await deps.shutdown()
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
	"""Keep the background poll slow enough that tests drive notifications explicitly."""
	original_interval = settings.notification_poll_seconds
	settings.notification_poll_seconds = 3600.0
	try:
		yield
	finally:
		settings.notification_poll_seconds = original_interval


@pytest_asyncio.fixture
async def memory_backend():
	backend = MemorySpotBackend()
	await deps.set_backend(backend)
	try:
		yield backend
	finally:
		await deps.set_backend(None)


@pytest_asyncio.fixture
async def api_client(memory_backend):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client


def spot_row(spot_id: str, creator_id: str, /, *, created_at: datetime = T0, **overrides) -> dict:
	"""Raw storage row with sensible defaults around the test origin point."""
	row = {
		"id": spot_id,
		"creator_id": creator_id,
		"message": f"hello from {creator_id}",
		"latitude": 45.5048,
		"longitude": -73.5772,
		"radius_m": 100.0,
		"duration_hours": 24,
		"created_at": created_at.isoformat() if isinstance(created_at, datetime) else created_at,
		"recipients": [],
		"replies": [],
		"kind": "message",
	}
	row.update(overrides)
	return row


@pytest.fixture
def t0() -> datetime:
	return T0


@pytest.fixture
def make_row():
	return spot_row
