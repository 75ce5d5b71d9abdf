import asyncio

import pytest
from fastapi.testclient import TestClient

from tenant_gateway.adapters.memory_store.stores import MemoryStateStore
from tenant_gateway.dependencies import get_dispatcher, get_state_store

from support import MockProvider, put_tenant, tenant_document


@pytest.fixture
def store():
    return MemoryStateStore()


@pytest.fixture
def provider():
    return MockProvider()


@pytest.fixture
def seeded_store(store):
    """Memory store holding tenant `abc`. For sync tests only."""
    asyncio.run(put_tenant(store, tenant_document()))
    return store


@pytest.fixture
def gateway(seeded_store, provider):
    """TestClient wired to the seeded memory store and the mock provider.

    The lifespan is not entered, so nothing else is seeded.
    """
    from tenant_gateway.main import app

    app.dependency_overrides = {
        get_state_store: lambda: seeded_store,
        get_dispatcher: provider.dispatcher,
    }
    yield TestClient(app)
    app.dependency_overrides = {}
