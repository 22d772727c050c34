"""Shared fixtures: an in-memory store and an API client bound to it."""

import pytest
from fastapi.testclient import TestClient

from adstudio.config import get_version_store
from adstudio.main import app
from adstudio.services.store import KeyValueStore
from adstudio.services.versions import VersionStore


@pytest.fixture
def store():
    kv = KeyValueStore("sqlite://")
    yield kv
    kv.close()


@pytest.fixture
def versions(store):
    return VersionStore(store)


@pytest.fixture
def client(versions):
    app.dependency_overrides[get_version_store] = lambda: versions
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
