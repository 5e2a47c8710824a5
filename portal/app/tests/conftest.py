"""
Shared fixtures for the portal tests.

The three identity providers are replaced by FakeProviders (see fakes.py).
"""

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from portal.app.auth.store import InMemorySessionStore
from portal.app.config import Settings
from portal.app.main import create_app
from portal.app.tests.fakes import FakeProviders, make_settings


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_providers() -> FakeProviders:
    return FakeProviders()


@pytest_asyncio.fixture
async def http_client(fake_providers):
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_providers.handle))
    yield client
    await client.aclose()


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore(ttl_seconds=3600)


@pytest.fixture
def app(settings, session_store, http_client):
    return create_app(settings=settings, store=session_store, http_client=http_client)


@pytest.fixture
def client(app):
    """Test client with the lifespan running (manager attached)."""
    with TestClient(app) as test_client:
        yield test_client
