"""
Task run registry - top-level task invocations and their outcome.

Task run statuses are validated against TaskRunStatus, but no transition
rules are applied; the scheduler owns the task run lifecycle.
"""

import logging
import sqlite3
from typing import Any, List, Mapping, Optional

from taskstore.core.errors import NotFoundError, ValidationError
from taskstore.core.filters import build_where, check_fields, normalize_id
from taskstore.core.models import TaskRun, TaskRunStatus, coerce_status, parse_status
from taskstore.utils.serialization import decode_payload, encode_payload, utc_now

__all__ = [
    "create_task_run",
    "get_task_run",
    "update_task_run",
    "query_task_runs",
    "task_run_exists",
]

logger = logging.getLogger(__name__)

PAYLOAD_FIELDS = ("input", "result", "error")
UPDATABLE_FIELDS = ("task_identifier", "status") + PAYLOAD_FIELDS
QUERYABLE_FIELDS = ("id", "task_identifier", "status", "created_at", "updated_at")


def _row_to_task_run(row: sqlite3.Row) -> TaskRun:
    return TaskRun(
        id=row["id"],
        task_identifier=row["task_identifier"],
        status=coerce_status(TaskRunStatus, row["status"]),
        input=decode_payload(row["input"], "task_runs.input"),
        result=decode_payload(row["result"], "task_runs.result"),
        error=decode_payload(row["error"], "task_runs.error"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _require_identifier(task_identifier: Any) -> str:
    if not isinstance(task_identifier, str) or not task_identifier.strip():
        raise ValidationError("task_identifier is required and must be a non-empty string")
    return task_identifier


def create_task_run(
    conn: sqlite3.Connection,
    task_identifier: str,
    status: Any = TaskRunStatus.PENDING,
    input: Any = None,
    result: Any = None,
    error: Any = None,
) -> TaskRun:
    """Insert a new task run and return the stored record."""
    task_identifier = _require_identifier(task_identifier)
    status = parse_status(TaskRunStatus, status)
    now = utc_now()

    with conn:
        cur = conn.execute(
            """
            INSERT INTO task_runs
            (task_identifier, status, input, result, error, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (task_identifier, status.value, encode_payload(input), encode_payload(result),
             encode_payload(error), now, now)
        )
    run_id = cur.lastrowid
    logger.debug("Created task run %s (%s, %s)", run_id, task_identifier, status.value)
    return get_task_run(conn, run_id)


def get_task_run(conn: sqlite3.Connection, run_id: Any) -> Optional[TaskRun]:
    """Fetch a task run by id, or None if it does not exist."""
    run_id = normalize_id(run_id, "task run id")
    row = conn.execute("SELECT * FROM task_runs WHERE id = ?", (run_id,)).fetchone()
    if row is None:
        return None
    return _row_to_task_run(row)


def task_run_exists(conn: sqlite3.Connection, run_id: int) -> bool:
    row = conn.execute("SELECT 1 FROM task_runs WHERE id = ?", (run_id,)).fetchone()
    return row is not None


def update_task_run(conn: sqlite3.Connection, run_id: Any, changes: Mapping[str, Any]) -> TaskRun:
    """
    Apply a partial update. Only the supplied fields change; updated_at is
    always refreshed.

    Raises:
        NotFoundError: If no task run has this id
        ValidationError: For unknown or immutable fields, or an unknown status
    """
    run_id = normalize_id(run_id, "task run id")
    check_fields(changes.keys(), UPDATABLE_FIELDS, "updatable task run")

    assignments = []
    values: List[Any] = []
    for column, value in changes.items():
        if column == "task_identifier":
            value = _require_identifier(value)
        elif column == "status":
            value = parse_status(TaskRunStatus, value).value
        elif column in PAYLOAD_FIELDS:
            value = encode_payload(value)
        assignments.append(f"{column} = ?")
        values.append(value)

    assignments.append("updated_at = ?")
    values.append(utc_now())

    with conn:
        cur = conn.execute(
            f"UPDATE task_runs SET {', '.join(assignments)} WHERE id = ?",
            (*values, run_id)
        )
    if cur.rowcount == 0:
        raise NotFoundError(f"Task run {run_id} does not exist")

    logger.debug("Updated task run %s: %s", run_id, ", ".join(changes) or "(touch)")
    return get_task_run(conn, run_id)


def query_task_runs(conn: sqlite3.Connection, criteria: Mapping[str, Any]) -> List[TaskRun]:
    """Task runs matching every exact-match criterion, in insertion order."""
    check_fields(criteria.keys(), QUERYABLE_FIELDS, "task run filter")
    for column, value in criteria.items():
        if isinstance(value, (list, tuple, set, frozenset)):
            raise ValidationError(f"Filter on {column} must be a single value, not a sequence")
    criteria = dict(criteria)
    if criteria.get("status") is not None:
        criteria["status"] = parse_status(TaskRunStatus, criteria["status"])
    if criteria.get("id") is not None:
        criteria["id"] = normalize_id(criteria["id"], "task run id")

    where, params = build_where(criteria)
    rows = conn.execute(f"SELECT * FROM task_runs{where} ORDER BY id", params).fetchall()
    return [_row_to_task_run(row) for row in rows]
