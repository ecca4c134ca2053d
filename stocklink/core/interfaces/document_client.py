"""
Abstract interface for the document store.

Documents are addressed by slash-separated paths whose segments alternate
collection and document id, e.g. ``branches/B1/inventory/MICHELIN``. A
collection path has an odd number of segments, a document path an even one.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any, Literal

FilterOp = Literal["==", "!=", "<", "<=", ">", ">=", "in", "array_contains"]


@dataclass(frozen=True)
class FieldFilter:
    """Equality/range predicate on a top-level (or dotted) document field."""

    field: str
    op: FilterOp
    value: Any


@dataclass
class StoredDocument:
    """A document read back from the store."""

    id: str
    path: str
    data: dict[str, Any]


def join_path(*segments: str) -> str:
    """Build a document or collection path from its segments."""
    return "/".join(segments)


class ITransaction(ABC):
    """
    Read-modify-write scope.

    All writes made through the transaction become visible together when
    the owning context manager exits cleanly, and none of them do if it
    exits with an exception.
    """

    @abstractmethod
    async def get(self, path: str) -> dict[str, Any] | None:
        """Read a document inside the transaction."""
        pass

    @abstractmethod
    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Create or replace (or merge into) a document."""
        pass

    @abstractmethod
    async def update(self, path: str, data: dict[str, Any]) -> None:
        """Merge fields into an existing document; NotFoundError if absent."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Delete a document, returning whether it existed."""
        pass

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Append a new document with a store-assigned id and created_at."""
        pass


class IDocumentClient(ABC):
    """Minimum capability set the core needs from its storage dependency."""

    @abstractmethod
    async def get(self, path: str) -> dict[str, Any] | None:
        """Get document data by path, or None."""
        pass

    @abstractmethod
    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Create or replace a document; merge=True keeps unspecified fields."""
        pass

    @abstractmethod
    async def update(self, path: str, data: dict[str, Any]) -> None:
        """Merge fields into an existing document; NotFoundError if absent."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Delete a document, returning whether it existed."""
        pass

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Append a new document with a store-assigned id and created_at."""
        pass

    @abstractmethod
    async def list_documents(self, collection: str) -> list[StoredDocument]:
        """List the direct children of a collection, ordered by id."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: list[FieldFilter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[StoredDocument]:
        """Query documents of a collection by equality/range filters."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[ITransaction]:
        """
        Open a transaction.

        Usage:
            async with client.transaction() as tx:
                lot = await tx.get(path)
                await tx.update(path, {"qty": lot["qty"] - 1})
        """
        pass
