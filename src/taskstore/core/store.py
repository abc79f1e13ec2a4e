"""
TaskStore - async facade over the four tables.

Usage:
    store = TaskStore("./data/tasks.db")     # or TaskStore() for :memory:
    report = await store.init()
    run = await store.create_task_run("sync-inventory", input={"sku": 1})
    frame = await store.create_stack_run(run.id, "fetch")
    ...
    await store.close()                       # checkpoints file-backed stores

Every data operation runs to completion on the calling task; nothing is
scheduled in the background. Each operation commits its own single-row
change, so a pair such as "create child, then suspend parent" is two
independent commits.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from taskstore.core import keystore, stack_runs, task_functions, task_runs
from taskstore.core.engine import Engine, get_engine
from taskstore.core.errors import StoreClosedError, UninitializedStoreError
from taskstore.core.models import (
    InitReport,
    KeystoreEntry,
    ShutdownReport,
    StackRun,
    StackRunNode,
    StackRunStatus,
    TaskFunction,
    TaskRun,
    TaskRunStatus,
)
from taskstore.db.schema import TABLE_COLUMNS, create_schema
from taskstore.utils.config import MEMORY, get_config
from taskstore.utils.serialization import decode_payload, decode_value

__all__ = ["TaskStore"]

logger = logging.getLogger(__name__)

_PAYLOAD_COLUMNS = {"input", "result", "error", "resume_payload", "metadata"}


class TaskStore:
    """
    Persistence for task runs, stack runs, task functions and settings.

    Args:
        location: ":memory:" for an ephemeral store, or a file path
        read_only: Never write the file back (close() skips the checkpoint)
    """

    def __init__(self, location: str = MEMORY, *, read_only: bool = False) -> None:
        self.location = str(location)
        self.read_only = read_only
        self._engine: Optional[Engine] = None
        self._conn: Optional[sqlite3.Connection] = None
        self._closed = False
        self.init_report: Optional[InitReport] = None

    @classmethod
    def from_env(cls, *, read_only: bool = False) -> "TaskStore":
        """Build a store at the TASK_DB location."""
        return cls(get_config()["db_path"], read_only=read_only)

    @property
    def is_memory(self) -> bool:
        return self.location == MEMORY

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def __repr__(self) -> str:
        state = "open" if self.is_open else ("closed" if self._closed else "new")
        return f"TaskStore({self.location!r}, {state})"

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def init(self) -> InitReport:
        """
        Load or create the working copy and ensure the schema exists.

        Load failures and schema problems do not raise; they are logged and
        reported through the returned InitReport. Calling init() on an open
        store returns the existing report.
        """
        if self._conn is not None:
            return self.init_report

        self._engine = await get_engine()
        conn, loaded, warnings = self._engine.open(self.location)
        report = InitReport(
            location=self.location,
            loaded_from_disk=loaded,
            degraded=bool(warnings),
            warnings=list(warnings),
        )
        report.warnings.extend(create_schema(conn))

        self._conn = conn
        self._closed = False
        self.init_report = report

        if report.warnings:
            logger.warning("Store %s initialized with %d warning(s)", self.location, len(report.warnings))
        else:
            logger.info("Store %s initialized (%s)", self.location,
                        "loaded from disk" if loaded else "new")
        return report

    async def checkpoint(self) -> int:
        """
        Write the working copy to disk now.

        Returns:
            Bytes written (0 for ephemeral or read-only stores)

        Raises:
            CheckpointError: If the file cannot be written
        """
        conn = self._connection()
        if self.is_memory or self.read_only:
            return 0
        written = self._engine.write(conn, self.location)
        logger.info("Checkpointed %s (%d bytes)", self.location, written)
        return written

    async def close(self) -> ShutdownReport:
        """
        Checkpoint (file-backed, writable stores) and release the connection.

        A failed checkpoint is logged and reported, and the connection is
        released anyway. Closing twice is a no-op.
        """
        report = ShutdownReport(location=self.location)
        if self._conn is None:
            report.already_closed = True
            return report

        try:
            if not self.is_memory and not self.read_only:
                written = self._engine.write(self._conn, self.location)
                report.checkpointed = True
                logger.info("Saved %s (%d bytes)", self.location, written)
        except OSError as e:
            logger.error("Error saving database: %s", e)
            report.warnings.append(str(e))
        finally:
            self._conn.close()
            self._conn = None
            self._closed = True
        return report

    async def __aenter__(self) -> "TaskStore":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            if self._closed:
                raise StoreClosedError(f"Store {self.location} is closed")
            raise UninitializedStoreError(f"Store {self.location} is not initialized; await init() first")
        return self._conn

    # -------------------------------------------------------------------------
    # Task runs
    # -------------------------------------------------------------------------

    async def create_task_run(
        self,
        task_identifier: str,
        *,
        status: Any = TaskRunStatus.PENDING,
        input: Any = None,
        result: Any = None,
        error: Any = None,
    ) -> TaskRun:
        return task_runs.create_task_run(
            self._connection(), task_identifier, status=status, input=input, result=result, error=error
        )

    async def get_task_run(self, run_id: Any) -> Optional[TaskRun]:
        return task_runs.get_task_run(self._connection(), run_id)

    async def update_task_run(self, run_id: Any, **changes: Any) -> TaskRun:
        return task_runs.update_task_run(self._connection(), run_id, changes)

    async def query_task_runs(self, **criteria: Any) -> List[TaskRun]:
        return task_runs.query_task_runs(self._connection(), criteria)

    # -------------------------------------------------------------------------
    # Stack runs
    # -------------------------------------------------------------------------

    async def create_stack_run(
        self,
        task_run_id: Any,
        operation: str,
        *,
        parent_stack_run_id: Any = None,
        status: Any = StackRunStatus.PENDING,
        input: Any = None,
        result: Any = None,
        error: Any = None,
    ) -> StackRun:
        return stack_runs.create_stack_run(
            self._connection(), task_run_id, operation,
            parent_stack_run_id=parent_stack_run_id, status=status,
            input=input, result=result, error=error,
        )

    async def get_stack_run(self, stack_run_id: Any) -> Optional[StackRun]:
        return stack_runs.get_stack_run(self._connection(), stack_run_id)

    async def update_stack_run(self, stack_run_id: Any, **changes: Any) -> StackRun:
        return stack_runs.update_stack_run(self._connection(), stack_run_id, changes)

    async def query_stack_runs(self, **criteria: Any) -> List[StackRun]:
        return stack_runs.query_stack_runs(self._connection(), criteria)

    async def get_pending_stack_runs(self, limit: Optional[int] = None) -> List[StackRun]:
        return stack_runs.get_pending_stack_runs(self._connection(), limit)

    async def get_child_stack_runs(self, parent_id: Any) -> List[StackRun]:
        return stack_runs.get_child_stack_runs(self._connection(), parent_id)

    async def get_stack_run_ancestry(self, stack_run_id: Any) -> Optional[List[StackRun]]:
        return stack_runs.get_stack_run_ancestry(self._connection(), stack_run_id)

    async def get_stack_tree(self, task_run_id: Any) -> List[StackRunNode]:
        return stack_runs.get_stack_tree(self._connection(), task_run_id)

    # -------------------------------------------------------------------------
    # Task functions
    # -------------------------------------------------------------------------

    async def store_task_function(self, identifier: str, code: str, *, metadata: Any = None) -> TaskFunction:
        return task_functions.store_task_function(self._connection(), identifier, code, metadata)

    async def get_task_function(self, identifier: str) -> Optional[TaskFunction]:
        return task_functions.get_task_function(self._connection(), identifier)

    async def list_task_functions(self) -> List[TaskFunction]:
        return task_functions.list_task_functions(self._connection())

    # -------------------------------------------------------------------------
    # Keystore
    # -------------------------------------------------------------------------

    async def set_keystore(self, key: str, value: Any) -> None:
        keystore.set_keystore(self._connection(), key, value)

    async def get_keystore(self, key: str) -> Any:
        return keystore.get_keystore(self._connection(), key)

    async def get_keystore_entry(self, key: str) -> Optional[KeystoreEntry]:
        return keystore.get_keystore_entry(self._connection(), key)

    async def delete_keystore(self, key: str) -> bool:
        return keystore.delete_keystore(self._connection(), key)

    async def list_keystore_keys(self) -> List[str]:
        return keystore.list_keystore_keys(self._connection())

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    async def export_tables(self) -> Dict[str, List[Dict[str, Any]]]:
        """Every table as decoded row dicts, keyed by table name."""
        conn = self._connection()
        tables: Dict[str, List[Dict[str, Any]]] = {}
        for table, columns in TABLE_COLUMNS.items():
            rows = conn.execute(f"SELECT {', '.join(columns)} FROM {table} ORDER BY id").fetchall()
            decoded = []
            for row in rows:
                record = dict(row)
                for column in _PAYLOAD_COLUMNS.intersection(record):
                    record[column] = decode_payload(record[column], f"{table}.{column}")
                if table == "keystore":
                    record["value"] = decode_value(record["value"])
                decoded.append(record)
            tables[table] = decoded
        return tables

    async def count_by_status(self) -> Dict[str, Dict[str, int]]:
        """Row counts per status for both run tables."""
        conn = self._connection()
        counts: Dict[str, Dict[str, int]] = {}
        for table in ("task_runs", "stack_runs"):
            rows = conn.execute(
                f"SELECT status, COUNT(*) AS n FROM {table} GROUP BY status ORDER BY status"
            ).fetchall()
            counts[table] = {row["status"]: row["n"] for row in rows}
        return counts
