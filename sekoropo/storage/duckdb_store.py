"""DuckDB-backed document store.

Each document is one row with its fields held in a JSON column. Predicates
and sorting run on typed documents after parsing, so the store behaves exactly
like the in-memory store for every operator.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import duckdb

from sekoropo.errors import DocumentNotFoundError, DuplicateDocumentError, StoreError
from sekoropo.models import Document, ListResult, utc_now_iso
from sekoropo.storage.adapter import normalize_fields, parse_document
from sekoropo.storage.base import filter_documents, sort_documents
from sekoropo.storage.memory_store import new_document_id, split_timestamps

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from sekoropo.storage.base import Predicate, SortSpec

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Re-raise DuckDB errors as ``StoreError``."""
    try:
        yield
    except duckdb.Error as e:
        logger.error(f"DuckDB {operation} failed: {e}")
        raise StoreError(f"DuckDB {operation} failed: {e}") from e


class DuckDBDocumentStore:
    """Document store with DuckDB storage (in-memory or on disk)."""

    supports_or = False

    def __init__(self, database_path: str | Path = ":memory:") -> None:
        """Initialize DuckDB document store.

        Args:
            database_path: DuckDB database path (":memory:" for in-memory)
        """
        self.db_path = database_path
        self.conn: duckdb.DuckDBPyConnection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the connection and create the documents table."""
        async with self._lock:
            with _store_errors("initialize"):
                self.conn = duckdb.connect(str(self.db_path))
                self.conn.execute("""
                    CREATE TABLE IF NOT EXISTS documents (
                        collection VARCHAR,
                        id VARCHAR,
                        fields JSON,
                        created_at VARCHAR,
                        updated_at VARCHAR,
                        PRIMARY KEY (collection, id)
                    )
                """)
            logger.info(f"DuckDB document store initialized at {self.db_path}")

    def _require_conn(self) -> duckdb.DuckDBPyConnection:
        if not self.conn:
            raise StoreError("DuckDB document store not initialized")
        return self.conn

    @staticmethod
    def _row_to_document(collection: str, row: tuple[Any, ...]) -> Document:
        document_id, raw_fields, created_at, updated_at = row
        fields = json.loads(raw_fields) if isinstance(raw_fields, str) else (raw_fields or {})
        return parse_document(
            collection,
            {"id": document_id, "created_at": created_at, "updated_at": updated_at, **fields},
        )

    def _fetch(self, collection: str, document_id: str) -> Document | None:
        conn = self._require_conn()
        with _store_errors("read"):
            row = conn.execute(
                "SELECT id, fields, created_at, updated_at FROM documents "
                "WHERE collection = ? AND id = ?",
                [collection, document_id],
            ).fetchone()
        return self._row_to_document(collection, row) if row else None

    async def list(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        sort: SortSpec | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> ListResult:
        """List matching documents with optional sort and window."""
        async with self._lock:
            conn = self._require_conn()
            with _store_errors("list"):
                rows = conn.execute(
                    "SELECT id, fields, created_at, updated_at FROM documents "
                    "WHERE collection = ? ORDER BY id",
                    [collection],
                ).fetchall()

        documents = [self._row_to_document(collection, row) for row in rows]
        matched = filter_documents(documents, predicates)
        if sort is not None:
            matched = sort_documents(matched, sort.field, sort.direction)

        end = None if limit is None else offset + limit
        return ListResult(documents=matched[offset:end], total=len(matched))

    async def get(self, collection: str, document_id: str) -> Document:
        """Get a document by ID."""
        async with self._lock:
            document = self._fetch(collection, document_id)
        if document is None:
            raise DocumentNotFoundError(collection, document_id)
        return document

    async def create(
        self,
        collection: str,
        fields: dict[str, Any],
        document_id: str | None = None,
    ) -> Document:
        """Insert a new document."""
        remaining, created_at, updated_at = split_timestamps(fields)
        normalized = normalize_fields(remaining)
        now = utc_now_iso()
        document_id = document_id or new_document_id()
        created_at = created_at or now
        updated_at = updated_at or created_at

        async with self._lock:
            if self._fetch(collection, document_id) is not None:
                raise DuplicateDocumentError(collection, document_id)
            conn = self._require_conn()
            with _store_errors("insert"):
                conn.execute(
                    "INSERT INTO documents VALUES (?, ?, ?::JSON, ?, ?)",
                    [collection, document_id, json.dumps(normalized), created_at, updated_at],
                )

        return Document(
            id=document_id,
            collection=collection,
            fields=normalized,
            created_at=created_at,
            updated_at=updated_at,
        )

    async def update(self, collection: str, document_id: str, fields: dict[str, Any]) -> Document:
        """Merge fields into an existing row."""
        remaining, created_at, updated_at = split_timestamps(fields)
        normalized = normalize_fields(remaining)

        async with self._lock:
            current = self._fetch(collection, document_id)
            if current is None:
                raise DocumentNotFoundError(collection, document_id)
            merged = {**current.fields, **normalized}
            created_at = created_at or current.created_at
            updated_at = updated_at or utc_now_iso()
            conn = self._require_conn()
            with _store_errors("update"):
                conn.execute(
                    "UPDATE documents SET fields = ?::JSON, created_at = ?, updated_at = ? "
                    "WHERE collection = ? AND id = ?",
                    [json.dumps(merged), created_at, updated_at, collection, document_id],
                )

        return Document(
            id=document_id,
            collection=collection,
            fields=merged,
            created_at=created_at,
            updated_at=updated_at,
        )

    async def delete(self, collection: str, document_id: str) -> None:
        """Delete a row."""
        async with self._lock:
            if self._fetch(collection, document_id) is None:
                raise DocumentNotFoundError(collection, document_id)
            conn = self._require_conn()
            with _store_errors("delete"):
                conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND id = ?",
                    [collection, document_id],
                )

    async def close(self) -> None:
        """Close database connection."""
        async with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
                logger.info("DuckDB document store closed")
