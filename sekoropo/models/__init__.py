"""Sekoropo data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")

FieldValue = str | bool | int | float | list[str] | None

_METADATA_NAMES = frozenset({"id", "collection", "created_at", "updated_at"})


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


class Document(BaseModel):
    """Typed document as returned by a document store.

    Attributes:
        id: Identity, unique within the collection
        collection: Logical collection name
        fields: Field name to scalar or string-array value
        created_at: ISO-8601 creation timestamp (set by the store)
        updated_at: ISO-8601 last update timestamp (set by the store)
    """

    id: str
    collection: str
    fields: dict[str, FieldValue] = Field(default_factory=dict)
    created_at: str | None = None
    updated_at: str | None = None

    def get(self, name: str, default: Any = None) -> Any:
        """Resolve a field or metadata attribute by name.

        A field stored under a metadata name (``created_at``) wins over the
        store-managed value.
        """
        if name in self.fields:
            return self.fields[name]
        if name in _METADATA_NAMES:
            value = getattr(self, name)
            return default if value is None else value
        return default

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a plain dict (metadata plus fields)."""
        return {
            "id": self.id,
            "collection": self.collection,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            **self.fields,
        }


@dataclass
class ListResult:
    """One page of documents plus the total number of matches."""

    documents: list[Document] = field(default_factory=list)
    total: int = 0


@dataclass(frozen=True)
class ApiResult(Generic[T]):
    """Uniform ``{success, data|error}`` envelope."""

    success: bool
    data: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> ApiResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> ApiResult[T]:
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error}


__all__ = [
    "ApiResult",
    "Document",
    "FieldValue",
    "ListResult",
    "utc_now_iso",
]
