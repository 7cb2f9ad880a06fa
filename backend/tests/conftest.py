import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Ensure backend package is importable when tests run from repo root
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
	sys.path.insert(0, str(BACKEND_ROOT))

from feedcore.feeds.domain.models import Community
from feedcore.infra.cache import CacheDomains
from feedcore.infra.memory_store import InMemoryDocumentStore
from feedcore.main import create_app
from feedcore.settings import settings

class FakeClock:
	"""Monotonic stand-in that only moves when a test advances it."""

	def __init__(self, start: float = 1000.0) -> None:
		self.now = start

	def __call__(self) -> float:
		return self.now

	def advance(self, seconds: float) -> None:
		self.now += seconds


@pytest.fixture(autouse=True)
def force_test_settings():
	"""Keep runs deterministic regardless of the ambient environment."""
	original_env = settings.environment
	original_public = settings.obs_metrics_public
	original_floor = settings.feed_fetch_floor
	settings.environment = "test"
	settings.obs_metrics_public = True
	settings.feed_fetch_floor = 25
	try:
		yield
	finally:
		settings.environment = original_env
		settings.obs_metrics_public = original_public
		settings.feed_fetch_floor = original_floor


@pytest.fixture
def fake_clock() -> FakeClock:
	return FakeClock()


@pytest.fixture
def store() -> InMemoryDocumentStore:
	documents = InMemoryDocumentStore()
	documents.communities["c1"] = Community(id="c1", name="Campus", owner_id="owner-1", mod_ids=["mod-1"])
	documents.communities["c2"] = Community(id="c2", name="Night Owls", owner_id="owner-2")
	documents.communities["secret"] = Community(id="secret", name="Secret", owner_id="owner-3", is_private=True)
	documents.add_member("c1", "alice")
	documents.add_member("c2", "alice")
	documents.add_user("alice", display_name="Alice", avatar_ref="avatars/alice.png")
	documents.add_user("bob", display_name="Bob")
	return documents


@pytest.fixture
def caches(fake_clock) -> CacheDomains:
	return CacheDomains.from_settings(settings, clock=fake_clock)


@pytest.fixture
def app(store, caches):
	return create_app(store=store, caches=caches)


@pytest_asyncio.fixture
async def api_client(app):
	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://testserver") as client:
		yield client
