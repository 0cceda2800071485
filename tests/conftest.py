"""Shared fixtures: a seeded MemoryStore and a registry over it."""

import pytest
import pytest_asyncio

from featuregate.config import clear_config_instance
from featuregate.models import Session
from featuregate.registry import FeatureRegistry
from featuregate.store import MemoryStore

ADMIN = Session(user_id="admin-1")
MEMBER = Session(user_id="user-1", active_organization_id="org-1")
OUTSIDER = Session(user_id="user-2", active_organization_id="org-1")


@pytest_asyncio.fixture
async def store():
    """MemoryStore with an admin, two users and two organizations.

    user-1 is a member of org-1, user-2 a member of org-2.
    """
    store = MemoryStore()
    await store.create("user", {"id": "admin-1", "role": "admin,user"})
    await store.create("user", {"id": "user-1", "role": "user"})
    await store.create("user", {"id": "user-2", "role": None})
    await store.create("organization", {"id": "org-1", "name": "Acme"})
    await store.create("organization", {"id": "org-2", "name": "Globex"})
    await store.create("member", {"organizationId": "org-1", "userId": "user-1"})
    await store.create("member", {"organizationId": "org-2", "userId": "user-2"})
    return store


@pytest.fixture
def registry(store):
    """Registry in organization mode without hooks."""
    return FeatureRegistry(store)


@pytest.fixture(autouse=True)
def cleanup():
    """Clean up config between tests."""
    yield
    clear_config_instance()
