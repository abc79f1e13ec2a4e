"""
SQLite engine bootstrap and working-copy I/O.

The engine is probed once per process. Concurrent first callers await the
same in-flight bootstrap task; once it resolves, every store (on any event
loop) reuses the cached Engine. A failed bootstrap is not cached, so a later
call retries.

Stores never open the file directly. The file's bytes are deserialized into
an in-memory connection, and checkpoint() serializes the whole database back
in one write.
"""

import asyncio
import logging
import os
import sqlite3
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from taskstore.core.errors import CheckpointError, EngineError
from taskstore.utils.config import MEMORY

__all__ = ["Engine", "get_engine", "reset_engine"]

logger = logging.getLogger(__name__)

# ON CONFLICT ... DO UPDATE needs 3.24
MIN_SQLITE_VERSION = (3, 24, 0)

_engine: Optional["Engine"] = None
_pending: Optional[asyncio.Task] = None


@dataclass(frozen=True)
class Engine:
    """Capabilities of the process's SQLite library."""
    sqlite_version: str
    foreign_keys: bool

    def connect(self) -> sqlite3.Connection:
        """Open an empty in-memory working copy."""
        conn = sqlite3.connect(MEMORY)
        conn.row_factory = sqlite3.Row
        if self.foreign_keys:
            conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def open(self, location: str) -> Tuple[sqlite3.Connection, bool, List[str]]:
        """
        Open a working copy for a store location.

        Returns:
            (connection, loaded_from_disk, warnings). A non-empty warnings
            list means the file could not be loaded and the store started
            empty instead.
        """
        if location == MEMORY:
            return self.connect(), False, []

        path = Path(location)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Could not create directory for %s: %s", path, e)
            return self.connect(), False, [f"Could not create directory {path.parent}: {e}"]

        if not path.exists():
            logger.info("No store file at %s, starting empty", path)
            return self.connect(), False, []

        conn = self.connect()
        try:
            data = path.read_bytes()
            if not data:
                logger.info("Store file %s is empty, starting empty", path)
                return conn, False, []
            conn.deserialize(data)
            if self.foreign_keys:
                conn.execute("PRAGMA foreign_keys = ON")
            check = conn.execute("PRAGMA quick_check").fetchone()[0]
            if check != "ok":
                raise sqlite3.DatabaseError(f"integrity check failed: {check}")
        except (OSError, sqlite3.Error) as e:
            logger.error("Error loading database from %s: %s", path, e)
            conn.close()
            return self.connect(), False, [f"Could not load {path}, started with an empty store: {e}"]

        logger.info("Loaded store from %s (%d bytes)", path, len(data))
        return conn, True, []

    @staticmethod
    def write(conn: sqlite3.Connection, location: str) -> int:
        """
        Serialize the working copy to `location`, replacing the file atomically.

        Returns:
            Number of bytes written

        Raises:
            CheckpointError: If serialization or the write fails
        """
        path = Path(location)
        try:
            conn.commit()
            data = conn.serialize()
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, sqlite3.Error) as e:
            raise CheckpointError(f"Could not write store to {path}: {e}") from e
        return len(data)


async def _bootstrap() -> Engine:
    """Probe the SQLite library for the features the store relies on."""
    if sqlite3.sqlite_version_info < MIN_SQLITE_VERSION:
        raise EngineError(
            f"SQLite {sqlite3.sqlite_version} is too old; "
            f"{'.'.join(map(str, MIN_SQLITE_VERSION))} or newer is required"
        )
    if not hasattr(sqlite3.Connection, "serialize"):
        raise EngineError("sqlite3 lacks Connection.serialize/deserialize (Python 3.11+ required)")

    probe = sqlite3.connect(MEMORY)
    try:
        probe.execute("PRAGMA foreign_keys = ON")
        foreign_keys = bool(probe.execute("PRAGMA foreign_keys").fetchone()[0])
    finally:
        probe.close()

    engine = Engine(sqlite_version=sqlite3.sqlite_version, foreign_keys=foreign_keys)
    logger.info("SQLite engine ready (version %s, foreign keys %s)",
                engine.sqlite_version, "on" if foreign_keys else "off")
    return engine


async def get_engine() -> Engine:
    """Return the process-wide engine, bootstrapping it on first use."""
    global _engine, _pending

    if _engine is not None:
        return _engine

    loop = asyncio.get_running_loop()
    if _pending is None or _pending.get_loop() is not loop:
        _pending = loop.create_task(_bootstrap())

    task = _pending
    try:
        engine = await asyncio.shield(task)
    except Exception:
        if _pending is task:
            _pending = None
        raise

    _engine = engine
    return engine


def reset_engine() -> None:
    """Forget the cached engine. The next get_engine() bootstraps again."""
    global _engine, _pending
    _engine = None
    _pending = None
