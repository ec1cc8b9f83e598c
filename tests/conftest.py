"""Shared fixtures: an in-memory registry and a coordinator over it."""

import os

# The API reads these at import time.
os.environ.setdefault("REGISTRY_BACKEND", "memory")
os.environ.setdefault("REGISTRY_AUDIT_INTERVAL_MINUTES", "0")
os.environ.setdefault("TIGERBEETLE_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from models.operations.coordinator import TransactionCoordinator
from models.operations.projects import project_approve, project_register
from models.repositories.memory import MemoryRegistryStore

DEVELOPER_ID = "dev-kasigau"
PROJECT_ID = "proj-kasigau"


@pytest.fixture
async def store():
    store = MemoryRegistryStore()
    await store.open()
    yield store
    await store.close()


@pytest.fixture
def coordinator(store):
    return TransactionCoordinator(store, initial_backoff_ms=1)


async def register_active(store, project_id=PROJECT_ID, total_credits=10000, price=100.0, developer_id=DEVELOPER_ID):
    await project_register(
        store,
        developer_id=developer_id,
        name="Kasigau Corridor REDD+",
        total_credits=total_credits,
        price_per_credit=price,
        vintage=2024,
        project_id=project_id,
    )
    await project_approve(store, project_id)
    return project_id


@pytest.fixture
async def active_project(store):
    return await register_active(store)
