"""SQLite implementation of the document store client."""

import json
import re
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

import aiosqlite

from stocklink.config import get_logger
from stocklink.core.exceptions import DatabaseError, NotFoundError, ValidationError
from stocklink.core.interfaces.document_client import (
    FieldFilter,
    IDocumentClient,
    ITransaction,
    StoredDocument,
)
from stocklink.infrastructure.storage.sqlite.connection import ConnectionPool

logger = get_logger(__name__)

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")

_COMPARISON_OPS = {"==": "=", "!=": "!=", "<": "<", "<=": "<=", ">": ">", ">=": ">="}

# Fixed-width so that stored timestamps compare correctly as text
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def format_timestamp(value: datetime) -> str:
    """Render a datetime as a fixed-width UTC ISO string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(_TIMESTAMP_FORMAT)


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def _json_default(value: Any) -> Any:
    encoded = _encode_value(value)
    if encoded is value:
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
    return encoded


def _dumps(data: dict[str, Any]) -> str:
    return json.dumps(data, default=_json_default, ensure_ascii=False, sort_keys=True)


def _split_document_path(path: str) -> tuple[str, str]:
    """Return (collection, doc_id) for a document path."""
    segments = path.split("/")
    if len(segments) % 2 != 0 or any(not s for s in segments):
        raise ValidationError("path", "not a document path", path)
    return "/".join(segments[:-1]), segments[-1]


def _check_collection_path(collection: str) -> None:
    segments = collection.split("/")
    if len(segments) % 2 != 1 or any(not s for s in segments):
        raise ValidationError("collection", "not a collection path", collection)


def _json_path(field: str) -> str:
    if not _FIELD_RE.match(field):
        raise ValidationError("field", "invalid field name", field)
    return f"$.{field}"


def _build_where(filters: list[FieldFilter]) -> tuple[list[str], list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    for f in filters:
        json_path = _json_path(f.field)
        if f.op == "array_contains":
            clauses.append(
                "EXISTS (SELECT 1 FROM json_each(documents.data, ?) WHERE json_each.value = ?)"
            )
            params.extend([json_path, _encode_value(f.value)])
        elif f.op == "in":
            values = [_encode_value(v) for v in f.value]
            if not values:
                clauses.append("0")
                continue
            placeholders = ", ".join("?" for _ in values)
            clauses.append(f"json_extract(data, ?) IN ({placeholders})")
            params.append(json_path)
            params.extend(values)
        elif f.op in ("==", "!=") and f.value is None:
            clauses.append(
                "json_extract(data, ?) IS NULL"
                if f.op == "=="
                else "json_extract(data, ?) IS NOT NULL"
            )
            params.append(json_path)
        elif f.op in _COMPARISON_OPS:
            clauses.append(f"json_extract(data, ?) {_COMPARISON_OPS[f.op]} ?")
            params.extend([json_path, _encode_value(f.value)])
        else:
            raise ValidationError("op", "unsupported filter operator", f.op)
    return clauses, params


async def _read(conn: aiosqlite.Connection, path: str) -> dict[str, Any] | None:
    cursor = await conn.execute("SELECT data FROM documents WHERE path = ?", (path,))
    row = await cursor.fetchone()
    if row is None:
        return None
    return json.loads(row["data"])


async def _write(conn: aiosqlite.Connection, path: str, data: dict[str, Any]) -> None:
    collection, doc_id = _split_document_path(path)
    now = format_timestamp(datetime.now(UTC))
    await conn.execute(
        """
        INSERT INTO documents (path, collection, doc_id, data, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(path) DO UPDATE SET
            data = excluded.data,
            updated_at = excluded.updated_at
        """,
        (path, collection, doc_id, _dumps(data), now, now),
    )


class SQLiteTransaction(ITransaction):
    """Transaction bound to one pooled connection holding the write lock."""

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn

    async def get(self, path: str) -> dict[str, Any] | None:
        _split_document_path(path)
        return await _read(self._conn, path)

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        if merge:
            existing = await _read(self._conn, path) or {}
            data = {**existing, **data}
        await _write(self._conn, path, data)

    async def update(self, path: str, data: dict[str, Any]) -> None:
        existing = await _read(self._conn, path)
        if existing is None:
            raise NotFoundError("document", path)
        await _write(self._conn, path, {**existing, **data})

    async def delete(self, path: str) -> bool:
        _split_document_path(path)
        cursor = await self._conn.execute("DELETE FROM documents WHERE path = ?", (path,))
        return cursor.rowcount > 0

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        _check_collection_path(collection)
        doc_id = uuid.uuid4().hex
        payload = dict(data)
        if payload.get("created_at") is None:
            payload["created_at"] = datetime.now(UTC)
        await _write(self._conn, f"{collection}/{doc_id}", payload)
        return doc_id


class SQLiteDocumentClient(IDocumentClient):
    """Document store on a single SQLite table with JSON bodies."""

    def __init__(self, pool: ConnectionPool):
        self._pool = pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteTransaction]:
        try:
            async with self._pool.transaction() as conn:
                yield SQLiteTransaction(conn)
        except aiosqlite.Error as e:
            logger.error("document_transaction_failed", error=str(e))
            raise DatabaseError("transaction", str(e)) from e

    async def get(self, path: str) -> dict[str, Any] | None:
        _split_document_path(path)
        try:
            async with self._pool.acquire() as conn:
                return await _read(conn, path)
        except aiosqlite.Error as e:
            raise DatabaseError("get", str(e)) from e

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        async with self.transaction() as tx:
            await tx.set(path, data, merge=merge)

    async def update(self, path: str, data: dict[str, Any]) -> None:
        async with self.transaction() as tx:
            await tx.update(path, data)

    async def delete(self, path: str) -> bool:
        async with self.transaction() as tx:
            return await tx.delete(path)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        async with self.transaction() as tx:
            return await tx.add(collection, data)

    async def list_documents(self, collection: str) -> list[StoredDocument]:
        _check_collection_path(collection)
        try:
            async with self._pool.acquire() as conn:
                cursor = await conn.execute(
                    "SELECT doc_id, path, data FROM documents WHERE collection = ? ORDER BY doc_id",
                    (collection,),
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise DatabaseError("list_documents", str(e)) from e
        return [self._row_to_document(row) for row in rows]

    async def query(
        self,
        collection: str,
        filters: list[FieldFilter] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[StoredDocument]:
        _check_collection_path(collection)
        clauses, params = _build_where(filters or [])
        sql = "SELECT doc_id, path, data FROM documents WHERE collection = ?"
        sql_params: list[Any] = [collection, *params]
        for clause in clauses:
            sql += f" AND {clause}"
        if order_by:
            direction = "DESC" if descending else "ASC"
            sql += f" ORDER BY json_extract(data, ?) {direction}, doc_id {direction}"
            sql_params.append(_json_path(order_by))
        else:
            sql += " ORDER BY doc_id"
        if limit is not None:
            sql += " LIMIT ?"
            sql_params.append(limit)

        try:
            async with self._pool.acquire() as conn:
                cursor = await conn.execute(sql, sql_params)
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise DatabaseError("query", str(e)) from e
        return [self._row_to_document(row) for row in rows]

    @staticmethod
    def _row_to_document(row: aiosqlite.Row) -> StoredDocument:
        """Convert a database row to a StoredDocument."""
        return StoredDocument(
            id=row["doc_id"],
            path=row["path"],
            data=json.loads(row["data"]),
        )
