"""Tests for schema creation."""

import sqlite3

import pytest

from taskstore.db.schema import (
    INDEXES,
    SCHEMA_VERSION,
    TABLE_COLUMNS,
    create_schema,
    list_indexes,
    list_tables,
)


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    connection.row_factory = sqlite3.Row
    connection.execute("PRAGMA foreign_keys = ON")
    yield connection
    connection.close()


class TestCreateSchema:
    """Tests for create_schema."""

    def test_creates_tables_and_indexes(self, conn):
        """All four tables and the lookup indexes exist afterwards."""
        assert create_schema(conn) == []
        assert list_tables(conn) == ["keystore", "stack_runs", "task_functions", "task_runs"]
        assert len(list_indexes(conn)) == len(INDEXES)

    def test_columns_match_table_columns(self, conn):
        """The declared column lists match the created tables."""
        create_schema(conn)
        for table, columns in TABLE_COLUMNS.items():
            created = [row["name"] for row in conn.execute(f"PRAGMA table_info({table})")]
            assert tuple(created) == columns

    def test_idempotent(self, conn):
        """Running twice changes nothing and reports nothing."""
        create_schema(conn)
        conn.execute(
            "INSERT INTO keystore (key, value, created_at, updated_at) VALUES ('k', '1', 'x', 'x')"
        )
        assert create_schema(conn) == []
        assert conn.execute("SELECT COUNT(*) FROM keystore").fetchone()[0] == 1

    def test_records_schema_version(self, conn):
        """user_version is set."""
        create_schema(conn)
        assert conn.execute("PRAGMA user_version").fetchone()[0] == SCHEMA_VERSION

    def test_index_failure_is_a_warning(self, conn):
        """A conflicting older table is reported instead of raising."""
        conn.execute("CREATE TABLE stack_runs (id INTEGER PRIMARY KEY)")
        warnings = create_schema(conn)
        assert warnings
        assert all("Schema statement failed" in w for w in warnings)
        assert "task_runs" in list_tables(conn)

    def test_stack_run_requires_existing_task_run(self, conn):
        """The foreign key on task_run_id is enforced."""
        create_schema(conn)
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO stack_runs (task_run_id, operation, created_at, updated_at) "
                "VALUES (99, 'op', 'x', 'x')"
            )
