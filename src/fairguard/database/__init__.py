"""
Database layer for FairGuard.

- **db_connection.py**: ``ConnectionManager``, a single long-lived aiosqlite
  connection with serialised write transactions.
- **db_schema.py**: ``SchemaManager``, idempotent create-if-not-exists
  migration for every table, index and trigger.
- **repositories/**: static-method CRUD per table.
"""

from fairguard.database.db_connection import ConnectionManager
from fairguard.database.db_schema import SchemaManager

__all__ = ["ConnectionManager", "SchemaManager"]
