"""
Database schema for the store.

- schema: table and index definitions, idempotent creation
"""

from taskstore.db.schema import SCHEMA_VERSION, TABLE_COLUMNS, create_schema

__all__ = ["SCHEMA_VERSION", "TABLE_COLUMNS", "create_schema"]
