"""Shared pytest fixtures for InferFlow tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from inferflow.export.router import get_session_storage
from inferflow.main import app
from inferflow.sessions.storage import SessionStorage
from inferflow.trees.router import get_tree_store
from inferflow.trees.store import TreeStore


@pytest.fixture
def store() -> TreeStore:
    """Empty tree store."""
    return TreeStore()


@pytest.fixture
def storage(tmp_path) -> SessionStorage:
    """Session storage writing into a per-test temp directory."""
    return SessionStorage(tmp_path / "session.json")


@pytest.fixture
async def client(store, storage):
    """Async test client with a fresh store wired into the app."""
    app.dependency_overrides[get_tree_store] = lambda: store
    app.dependency_overrides[get_session_storage] = lambda: storage
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client
    app.dependency_overrides.clear()
