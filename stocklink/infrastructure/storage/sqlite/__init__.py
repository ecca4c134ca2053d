"""SQLite storage implementations."""

from stocklink.infrastructure.storage.sqlite.connection import ConnectionPool
from stocklink.infrastructure.storage.sqlite.document_client import (
    SQLiteDocumentClient,
    SQLiteTransaction,
    format_timestamp,
)
from stocklink.infrastructure.storage.sqlite.migrations import (
    get_migration_status,
    initialize_database,
    run_migrations,
)

__all__ = [
    # Connection
    "ConnectionPool",
    # Client
    "SQLiteDocumentClient",
    "SQLiteTransaction",
    "format_timestamp",
    # Migrations
    "initialize_database",
    "run_migrations",
    "get_migration_status",
]
