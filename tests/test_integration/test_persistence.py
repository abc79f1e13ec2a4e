"""
End-to-end tests for file-backed stores: checkpoint, reload, degraded
loads and failed saves.
"""

import pytest

from taskstore import StackRunStatus, TaskStore
from taskstore.core.errors import CheckpointError


pytestmark = pytest.mark.integration


class TestFileRoundTrip:
    """Data written before close() is visible after reopening."""

    @pytest.mark.asyncio
    async def test_reopen_restores_everything(self, temp_dir, sample_payload):
        """All four tables survive close and reopen."""
        location = str(temp_dir / "tasks.db")

        store = TaskStore(location)
        report = await store.init()
        assert not report.loaded_from_disk
        run = await store.create_task_run("persisted", input=sample_payload)
        root = await store.create_stack_run(run.id, "root", status="running")
        child = await store.create_stack_run(run.id, "child", parent_stack_run_id=root.id)
        await store.update_stack_run(root.id, status="suspended_waiting_child")
        await store.store_task_function("persisted", "code", metadata={"v": 1})
        await store.set_keystore("cursor", "123")
        shutdown = await store.close()
        assert shutdown.checkpointed

        reopened = TaskStore(location)
        report = await reopened.init()
        assert report.loaded_from_disk
        assert not report.degraded

        fetched = await reopened.get_task_run(run.id)
        assert fetched.input == sample_payload
        frame = await reopened.get_stack_run(root.id)
        assert frame.status == StackRunStatus.SUSPENDED_WAITING_CHILD
        assert frame.suspended_at is not None
        pending = await reopened.get_pending_stack_runs()
        assert [f.id for f in pending] == [root.id, child.id]
        assert (await reopened.get_task_function("persisted")).metadata == {"v": 1}
        assert await reopened.get_keystore("cursor") == "123"

        new_run = await reopened.create_task_run("after-reload")
        assert new_run.id > run.id
        await reopened.close()

    @pytest.mark.asyncio
    async def test_explicit_checkpoint(self, temp_dir):
        """checkpoint() writes without closing."""
        location = temp_dir / "nested" / "dir" / "tasks.db"
        store = TaskStore(str(location))
        await store.init()
        await store.create_task_run("t")
        written = await store.checkpoint()
        assert written > 0
        assert location.stat().st_size == written
        assert store.is_open
        await store.close()

    @pytest.mark.asyncio
    async def test_empty_file_starts_empty(self, temp_dir):
        """A zero-byte file is treated as a new store."""
        location = temp_dir / "empty.db"
        location.write_bytes(b"")
        store = TaskStore(str(location))
        report = await store.init()
        assert not report.loaded_from_disk
        assert not report.degraded
        await store.close()

    @pytest.mark.asyncio
    async def test_read_only_store_never_writes(self, temp_dir):
        """Changes in a read-only store are discarded on close."""
        location = str(temp_dir / "tasks.db")
        async with TaskStore(location) as store:
            await store.create_task_run("kept")

        read_only = TaskStore(location, read_only=True)
        await read_only.init()
        await read_only.create_task_run("discarded")
        assert await read_only.checkpoint() == 0
        shutdown = await read_only.close()
        assert not shutdown.checkpointed

        async with TaskStore(location) as store:
            names = [r.task_identifier for r in await store.query_task_runs()]
        assert names == ["kept"]


class TestDegradedOperation:
    """Load and save failures are reported, not raised."""

    @pytest.mark.asyncio
    async def test_corrupt_file_starts_empty(self, temp_dir):
        """An unreadable file yields a degraded, empty, usable store."""
        location = temp_dir / "corrupt.db"
        location.write_bytes(b"this is not a sqlite database" * 64)

        store = TaskStore(str(location), read_only=True)
        report = await store.init()
        assert report.degraded
        assert report.warnings
        assert not report.loaded_from_disk

        assert await store.query_task_runs() == []
        run = await store.create_task_run("still-works")
        assert run.id is not None
        await store.close()

    @pytest.mark.asyncio
    async def test_failed_save_still_closes(self, temp_dir):
        """A failed checkpoint on close is reported and the store is released."""
        location = temp_dir / "is-a-directory"
        location.mkdir()

        store = TaskStore(str(location))
        report = await store.init()
        assert report.degraded
        await store.create_task_run("lost")

        with pytest.raises(CheckpointError):
            await store.checkpoint()

        shutdown = await store.close()
        assert not shutdown.checkpointed
        assert shutdown.warnings
        assert not store.is_open
        assert [p.name for p in temp_dir.iterdir()] == ["is-a-directory"]
