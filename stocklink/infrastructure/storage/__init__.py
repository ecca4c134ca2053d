"""Storage infrastructure implementations."""

from stocklink.infrastructure.storage.sqlite import (
    ConnectionPool,
    SQLiteDocumentClient,
    initialize_database,
)

__all__ = [
    "ConnectionPool",
    "SQLiteDocumentClient",
    "initialize_database",
]
