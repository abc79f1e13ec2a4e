"""
Store schema: the four tables and their lookup indexes.

Creation is idempotent - every statement uses IF NOT EXISTS, and an
"already exists" error from an older file is skipped. Any other failure is
logged and returned as a warning instead of aborting initialization.
"""

import logging
import sqlite3
from typing import Dict, List

__all__ = [
    "SCHEMA_VERSION",
    "TABLES",
    "INDEXES",
    "TABLE_COLUMNS",
    "create_schema",
    "list_tables",
    "list_indexes",
]

logger = logging.getLogger(__name__)

# Stored in PRAGMA user_version
SCHEMA_VERSION = 1


TABLES = [
    """
    CREATE TABLE IF NOT EXISTS task_runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_identifier TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        input TEXT,
        result TEXT,
        error TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS stack_runs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_run_id INTEGER NOT NULL REFERENCES task_runs(id),
        parent_stack_run_id INTEGER REFERENCES stack_runs(id),
        operation TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        input TEXT,
        result TEXT,
        error TEXT,
        suspended_at TEXT,
        resume_payload TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_functions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        identifier TEXT NOT NULL UNIQUE,
        code TEXT NOT NULL,
        metadata TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS keystore (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        key TEXT NOT NULL UNIQUE,
        value TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
]


INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_task_runs_identifier ON task_runs(task_identifier)",
    "CREATE INDEX IF NOT EXISTS idx_task_runs_status ON task_runs(status)",
    "CREATE INDEX IF NOT EXISTS idx_stack_runs_task ON stack_runs(task_run_id)",
    "CREATE INDEX IF NOT EXISTS idx_stack_runs_status ON stack_runs(status)",
    "CREATE INDEX IF NOT EXISTS idx_stack_runs_parent ON stack_runs(parent_stack_run_id)",
]


TABLE_COLUMNS: Dict[str, tuple] = {
    "task_runs": (
        "id", "task_identifier", "status", "input", "result", "error",
        "created_at", "updated_at",
    ),
    "stack_runs": (
        "id", "task_run_id", "parent_stack_run_id", "operation", "status",
        "input", "result", "error", "suspended_at", "resume_payload",
        "created_at", "updated_at",
    ),
    "task_functions": ("id", "identifier", "code", "metadata", "created_at", "updated_at"),
    "keystore": ("id", "key", "value", "created_at", "updated_at"),
}


def _statement_name(statement: str) -> str:
    return " ".join(statement.split("(")[0].split())


def _apply(conn: sqlite3.Connection, statements: List[str], warnings: List[str]) -> None:
    for statement in statements:
        try:
            conn.execute(statement.strip())
            logger.debug("Applied: %s", _statement_name(statement))
        except sqlite3.Error as e:
            if "already exists" in str(e).lower():
                logger.debug("Already exists (skipped): %s", _statement_name(statement))
                continue
            message = f"Schema statement failed ({_statement_name(statement)}): {e}"
            logger.error(message)
            warnings.append(message)


def create_schema(conn: sqlite3.Connection) -> List[str]:
    """
    Create tables and indexes that do not exist yet.

    Returns:
        Warnings for statements that failed for a reason other than
        "already exists". An empty list means the schema is complete.
    """
    warnings: List[str] = []
    _apply(conn, TABLES, warnings)
    _apply(conn, INDEXES, warnings)
    try:
        current = conn.execute("PRAGMA user_version").fetchone()[0]
        if current < SCHEMA_VERSION:
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
    except sqlite3.Error as e:
        message = f"Could not record schema version: {e}"
        logger.error(message)
        warnings.append(message)
    conn.commit()
    return warnings


def list_tables(conn: sqlite3.Connection) -> List[str]:
    """Names of user tables, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
    ).fetchall()
    return [row[0] for row in rows]


def list_indexes(conn: sqlite3.Connection) -> List[str]:
    """Names of explicitly created indexes, sorted."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'index' AND name LIKE 'idx_%' ORDER BY name"
    ).fetchall()
    return [row[0] for row in rows]
