"""
Task function catalog - runnable code stored under a stable identifier.

Storing under an existing identifier replaces the whole record (new id, new
timestamps, metadata dropped unless resupplied). There is no version history.
"""

import logging
import sqlite3
from typing import Any, List, Optional

from taskstore.core.errors import ValidationError
from taskstore.core.models import TaskFunction
from taskstore.utils.serialization import decode_payload, encode_payload, utc_now

__all__ = ["store_task_function", "get_task_function", "list_task_functions"]

logger = logging.getLogger(__name__)


def _row_to_task_function(row: sqlite3.Row) -> TaskFunction:
    return TaskFunction(
        id=row["id"],
        identifier=row["identifier"],
        code=row["code"],
        metadata=decode_payload(row["metadata"], "task_functions.metadata"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def store_task_function(
    conn: sqlite3.Connection,
    identifier: str,
    code: str,
    metadata: Any = None,
) -> TaskFunction:
    """Insert or fully replace the task function for `identifier`."""
    if not isinstance(identifier, str) or not identifier.strip():
        raise ValidationError("identifier is required and must be a non-empty string")
    if not isinstance(code, str) or not code:
        raise ValidationError("code is required and must be a non-empty string")

    now = utc_now()
    with conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO task_functions (identifier, code, metadata, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (identifier, code, encode_payload(metadata), now, now)
        )
    logger.debug("Stored task function %s (%d chars)", identifier, len(code))
    return get_task_function(conn, identifier)


def get_task_function(conn: sqlite3.Connection, identifier: str) -> Optional[TaskFunction]:
    """Exact-identifier lookup; None if missing."""
    row = conn.execute(
        "SELECT * FROM task_functions WHERE identifier = ?",
        (identifier,)
    ).fetchone()
    if row is None:
        return None
    return _row_to_task_function(row)


def list_task_functions(conn: sqlite3.Connection) -> List[TaskFunction]:
    rows = conn.execute("SELECT * FROM task_functions ORDER BY identifier").fetchall()
    return [_row_to_task_function(row) for row in rows]
