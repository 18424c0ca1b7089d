"""In-memory document store for tests and local development."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Any

from sekoropo.errors import DocumentNotFoundError, DuplicateDocumentError
from sekoropo.models import Document, ListResult, utc_now_iso
from sekoropo.storage.adapter import normalize_fields
from sekoropo.storage.base import filter_documents, sort_documents

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sekoropo.storage.base import Predicate, SortSpec

logger = logging.getLogger(__name__)


def new_document_id() -> str:
    """Generate a store-assigned document ID."""
    return uuid.uuid4().hex[:20]


def split_timestamps(fields: dict[str, Any]) -> tuple[dict[str, Any], str | None, str | None]:
    """Pull ``created_at``/``updated_at`` out of a field mapping."""
    remaining = dict(fields)
    created_at = remaining.pop("created_at", None)
    updated_at = remaining.pop("updated_at", None)
    return remaining, created_at, updated_at


class InMemoryDocumentStore:
    """Document store backed by a dict of collections."""

    supports_or = False

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = asyncio.Lock()

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
            documents = list(self._collections.get(collection, {}).values())

        matched = filter_documents(documents, predicates)
        if sort is not None:
            matched = sort_documents(matched, sort.field, sort.direction)

        end = None if limit is None else offset + limit
        page = [d.model_copy(deep=True) for d in matched[offset:end]]
        return ListResult(documents=page, total=len(matched))

    async def get(self, collection: str, document_id: str) -> Document:
        """Get a document by ID."""
        async with self._lock:
            document = self._collections.get(collection, {}).get(document_id)
        if document is None:
            raise DocumentNotFoundError(collection, document_id)
        return document.model_copy(deep=True)

    async def create(
        self,
        collection: str,
        fields: dict[str, Any],
        document_id: str | None = None,
    ) -> Document:
        """Create a document."""
        remaining, created_at, updated_at = split_timestamps(fields)
        normalized = normalize_fields(remaining)
        now = utc_now_iso()

        async with self._lock:
            documents = self._collections.setdefault(collection, {})
            document_id = document_id or new_document_id()
            if document_id in documents:
                raise DuplicateDocumentError(collection, document_id)
            document = Document(
                id=document_id,
                collection=collection,
                fields=normalized,
                created_at=created_at or now,
                updated_at=updated_at or created_at or now,
            )
            documents[document_id] = document

        logger.debug(f"Created {collection}/{document_id}")
        return document.model_copy(deep=True)

    async def update(self, collection: str, document_id: str, fields: dict[str, Any]) -> Document:
        """Merge fields into an existing document."""
        remaining, created_at, updated_at = split_timestamps(fields)
        normalized = normalize_fields(remaining)

        async with self._lock:
            current = self._collections.get(collection, {}).get(document_id)
            if current is None:
                raise DocumentNotFoundError(collection, document_id)
            updated = current.model_copy(
                update={
                    "fields": {**current.fields, **normalized},
                    "created_at": created_at or current.created_at,
                    "updated_at": updated_at or utc_now_iso(),
                },
                deep=True,
            )
            self._collections[collection][document_id] = updated

        return updated.model_copy(deep=True)

    async def delete(self, collection: str, document_id: str) -> None:
        """Delete a document."""
        async with self._lock:
            documents = self._collections.get(collection, {})
            if document_id not in documents:
                raise DocumentNotFoundError(collection, document_id)
            del documents[document_id]

        logger.debug(f"Deleted {collection}/{document_id}")

    async def close(self) -> None:
        """Nothing to release; present for interface parity with DuckDB."""
