"""Core interfaces (ports) for dependency injection."""

from stocklink.core.interfaces.document_client import (
    FieldFilter,
    FilterOp,
    IDocumentClient,
    ITransaction,
    StoredDocument,
    join_path,
)
from stocklink.core.interfaces.event_sink import IEventSink

__all__ = [
    # Storage interfaces
    "IDocumentClient",
    "ITransaction",
    "FieldFilter",
    "FilterOp",
    "StoredDocument",
    "join_path",
    # Notification interfaces
    "IEventSink",
]
