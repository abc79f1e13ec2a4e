"""Pytest configuration and shared fixtures."""

import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from taskstore import TaskStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory for store files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_payload():
    """Nested payload for round-trip checks."""
    return {
        "userId": "123",
        "metadata": {"timestamp": 1718000000000, "tags": ["important"]},
        "nested": {"deep": {"value": True, "nothing": None}},
        "items": [1, 2.5, "three", None, {"four": 4}],
    }


@pytest_asyncio.fixture
async def store():
    """Initialized ephemeral store, closed after the test."""
    store = TaskStore()
    await store.init()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def task_run(store):
    """A pending task run to hang stack runs from."""
    return await store.create_task_run("sync-inventory")
