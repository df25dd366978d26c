"""Fixtures for route tests: the real app with store and config overridden."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from qdash.db.store import RecordStore
from qdash.web.app import app
from qdash.web.dependencies import get_app_config, get_store


@pytest.fixture
def mock_store():
    """RecordStore double; every verb is awaitable and select returns nothing."""
    store = MagicMock(spec=RecordStore)
    store.session = AsyncMock()
    store.select = AsyncMock(return_value=[])
    store.insert = AsyncMock(return_value=[])
    store.delete = AsyncMock(return_value=0)
    store.upsert = AsyncMock(return_value=[])
    store.commit = AsyncMock()
    store.rollback = AsyncMock()
    return store


@pytest.fixture
def client(mock_store, test_config):
    """Create test client."""

    async def override_store():
        yield mock_store

    app.dependency_overrides[get_store] = override_store
    app.dependency_overrides[get_app_config] = lambda: test_config
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
