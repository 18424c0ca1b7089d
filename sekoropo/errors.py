"""Error taxonomy for Sekoropo.

Store errors come from the document store adapters. The remaining classes are
raised inside the core and converted to ``ApiResult`` failures at each
service boundary.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sekoropo.storage.base import QuerySpec


class SekoropoError(Exception):
    """Base class for all Sekoropo errors."""


class StoreError(SekoropoError):
    """Raised when the document store rejects or fails an operation."""


class DocumentNotFoundError(StoreError):
    """Raised when a document does not exist in a collection."""

    def __init__(self, collection: str, document_id: str) -> None:
        super().__init__(f"Document {document_id} not found in {collection}")
        self.collection = collection
        self.document_id = document_id


class DuplicateDocumentError(StoreError):
    """Raised when creating a document whose ID is already taken."""

    def __init__(self, collection: str, document_id: str) -> None:
        super().__init__(f"Document {document_id} already exists in {collection}")
        self.collection = collection
        self.document_id = document_id


class QueryFailure(SekoropoError):
    """Raised when one source query of a fan-out fails.

    The whole merge fails; ``source_index`` names the failing source.
    """

    def __init__(self, source_index: int, query: QuerySpec, cause: BaseException) -> None:
        super().__init__(
            f"Source query {source_index} on {query.collection} "
            f"({query.describe()}) failed: {cause}"
        )
        self.source_index = source_index
        self.query = query
        self.cause = cause


class MutationFailure(SekoropoError):
    """Raised when the primary write of a mutation fails."""

    def __init__(
        self,
        operation: str,
        collection: str,
        document_id: str | None,
        cause: BaseException,
    ) -> None:
        target = f"{collection}/{document_id}" if document_id else collection
        super().__init__(f"{operation} on {target} failed: {cause}")
        self.operation = operation
        self.collection = collection
        self.document_id = document_id
        self.cause = cause


class SideEffectFailure(SekoropoError):
    """A derived write failed after its primary write succeeded.

    Never propagated to callers; only logged and counted.
    """

    def __init__(self, collection: str | None, cause: BaseException) -> None:
        super().__init__(f"Side effect on {collection or 'unknown'} failed: {cause}")
        self.collection = collection
        self.cause = cause


class ValidationFailure(SekoropoError):
    """Raised for malformed input or an invalid state transition."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details = details
