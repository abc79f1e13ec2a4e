"""Scalar keystore - named settings, upsert or delete, no history."""

import logging
import sqlite3
from typing import Any, List, Optional

from taskstore.core.errors import ValidationError
from taskstore.core.models import KeystoreEntry
from taskstore.utils.serialization import decode_value, encode_value, utc_now

__all__ = ["set_keystore", "get_keystore", "get_keystore_entry", "delete_keystore", "list_keystore_keys"]

logger = logging.getLogger(__name__)


def _require_key(key: Any) -> str:
    if not isinstance(key, str) or not key:
        raise ValidationError("keystore key must be a non-empty string")
    return key


def set_keystore(conn: sqlite3.Connection, key: str, value: Any) -> None:
    """Insert or replace the value for `key`; created_at survives replacement."""
    key = _require_key(key)
    now = utc_now()
    with conn:
        conn.execute(
            """
            INSERT INTO keystore (key, value, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, encode_value(value), now, now)
        )
    logger.debug("Set keystore key %s", key)


def get_keystore_entry(conn: sqlite3.Connection, key: str) -> Optional[KeystoreEntry]:
    row = conn.execute(
        "SELECT key, value, created_at, updated_at FROM keystore WHERE key = ?",
        (_require_key(key),)
    ).fetchone()
    if row is None:
        return None
    return KeystoreEntry(
        key=row["key"],
        value=decode_value(row["value"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def get_keystore(conn: sqlite3.Connection, key: str) -> Any:
    """Decoded value for `key`, or None when the key is missing."""
    entry = get_keystore_entry(conn, key)
    return entry.value if entry is not None else None


def delete_keystore(conn: sqlite3.Connection, key: str) -> bool:
    """Remove `key`. Returns whether a row was deleted; a missing key is not an error."""
    with conn:
        cur = conn.execute("DELETE FROM keystore WHERE key = ?", (_require_key(key),))
    deleted = cur.rowcount > 0
    logger.debug("Delete keystore key %s (%s)", key, "removed" if deleted else "absent")
    return deleted


def list_keystore_keys(conn: sqlite3.Connection) -> List[str]:
    rows = conn.execute("SELECT key FROM keystore ORDER BY key").fetchall()
    return [row["key"] for row in rows]
