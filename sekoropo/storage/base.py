"""Document store interface and query building blocks.

Stores only compose predicates with AND. Logical OR is emulated above the
store by :mod:`sekoropo.query.fanout`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Literal, Protocol, TypeGuard

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sekoropo.models import Document, ListResult

SortDirection = Literal["asc", "desc"]


class Operator(Enum):
    """Predicate operators supported natively by the store."""

    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    GREATER_EQUAL = "greater_equal"
    LESS_EQUAL = "less_equal"
    GREATER = "greater"
    LESS = "less"
    IN = "in"  # field value is one of a set
    CONTAINS = "contains"  # array field contains value
    SEARCH = "search"  # case-insensitive substring


def parse_timestamp(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def comparable(value: Any) -> tuple[int, Any]:
    """Ordering key shared by sorting and range predicates.

    Numbers compare numerically and ISO-8601 strings compare as instants.
    The leading rank keeps mixed types from raising ``TypeError``.
    """
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, int | float):
        return (0, value)
    if isinstance(value, datetime):
        return (1, value if value.tzinfo else value.replace(tzinfo=UTC))
    if isinstance(value, str):
        parsed = parse_timestamp(value) if value[:1].isdigit() else None
        if parsed is not None:
            return (1, parsed)
        return (2, value)
    return (3, str(value))


@dataclass(frozen=True)
class Predicate:
    """Single field predicate."""

    field: str
    operator: Operator
    value: Any

    @classmethod
    def equal(cls, field: str, value: Any) -> Predicate:
        return cls(field, Operator.EQUAL, value)

    @classmethod
    def not_equal(cls, field: str, value: Any) -> Predicate:
        return cls(field, Operator.NOT_EQUAL, value)

    @classmethod
    def greater_equal(cls, field: str, value: Any) -> Predicate:
        return cls(field, Operator.GREATER_EQUAL, value)

    @classmethod
    def less_equal(cls, field: str, value: Any) -> Predicate:
        return cls(field, Operator.LESS_EQUAL, value)

    @classmethod
    def greater(cls, field: str, value: Any) -> Predicate:
        return cls(field, Operator.GREATER, value)

    @classmethod
    def less(cls, field: str, value: Any) -> Predicate:
        return cls(field, Operator.LESS, value)

    @classmethod
    def is_in(cls, field: str, values: Sequence[Any]) -> Predicate:
        return cls(field, Operator.IN, tuple(values))

    @classmethod
    def contains(cls, field: str, value: Any) -> Predicate:
        return cls(field, Operator.CONTAINS, value)

    @classmethod
    def search(cls, field: str, term: str) -> Predicate:
        return cls(field, Operator.SEARCH, term)

    def matches(self, document: Document) -> bool:
        """Evaluate the predicate against a document."""
        actual = document.get(self.field)
        op = self.operator

        if op is Operator.EQUAL:
            return actual == self.value
        if op is Operator.NOT_EQUAL:
            return actual != self.value
        if op is Operator.IN:
            return actual in self.value
        if op is Operator.CONTAINS:
            return isinstance(actual, list) and self.value in actual
        if op is Operator.SEARCH:
            return isinstance(actual, str) and str(self.value).lower() in actual.lower()

        # Range operators never match a missing value
        if actual is None:
            return False
        left, right = comparable(actual), comparable(self.value)
        if left[0] != right[0]:
            return False
        if op is Operator.GREATER_EQUAL:
            return left >= right
        if op is Operator.LESS_EQUAL:
            return left <= right
        if op is Operator.GREATER:
            return left > right
        return left < right

    def describe(self) -> str:
        return f"{self.field} {self.operator.value} {self.value!r}"


@dataclass(frozen=True)
class SortSpec:
    """Sort order for a list query."""

    field: str = "created_at"
    direction: SortDirection = "desc"


@dataclass(frozen=True)
class QuerySpec:
    """One AND-composed query against a collection, without pagination."""

    collection: str
    predicates: tuple[Predicate, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # Accept any sequence, store a tuple
        object.__setattr__(self, "predicates", tuple(self.predicates))

    def with_predicates(self, *predicates: Predicate) -> QuerySpec:
        return QuerySpec(self.collection, (*self.predicates, *predicates))

    def matches(self, document: Document) -> bool:
        return all(p.matches(document) for p in self.predicates)

    def describe(self) -> str:
        if not self.predicates:
            return "all"
        return " AND ".join(p.describe() for p in self.predicates)


class DocumentStore(Protocol):
    """Protocol for document store backends."""

    supports_or: bool

    async def list(
        self,
        collection: str,
        predicates: Sequence[Predicate] = (),
        sort: SortSpec | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> ListResult:
        """List matching documents. ``total`` counts all matches, not the page."""
        ...

    async def get(self, collection: str, document_id: str) -> Document:
        """Get a document by ID. Raises DocumentNotFoundError."""
        ...

    async def create(
        self,
        collection: str,
        fields: dict[str, Any],
        document_id: str | None = None,
    ) -> Document:
        """Create a document, generating an ID when none is given."""
        ...

    async def update(self, collection: str, document_id: str, fields: dict[str, Any]) -> Document:
        """Merge ``fields`` into an existing document."""
        ...

    async def delete(self, collection: str, document_id: str) -> None:
        """Delete a document. Raises DocumentNotFoundError."""
        ...


class OrCapableDocumentStore(DocumentStore, Protocol):
    """Store that evaluates an OR of AND-composed branches in one query.

    Only consulted when ``supports_or`` is true.
    """

    async def list_any(
        self,
        collection: str,
        branches: Sequence[Sequence[Predicate]],
    ) -> ListResult:
        """List documents matching any branch. ``total`` counts distinct matches."""
        ...


def supports_native_or(store: DocumentStore) -> TypeGuard[OrCapableDocumentStore]:
    """True when ``store`` advertises native OR queries."""
    return store.supports_or is True


def sort_documents(
    documents: Sequence[Document],
    sort_field: str,
    direction: SortDirection = "desc",
    identity_field: str = "id",
) -> list[Document]:
    """Sort documents by one field, ties broken by identity as a string, ascending.

    Documents missing the sort field are placed last regardless of direction.
    """
    by_identity = sorted(documents, key=lambda d: str(d.get(identity_field)))
    present = [d for d in by_identity if d.get(sort_field) is not None]
    missing = [d for d in by_identity if d.get(sort_field) is None]
    # list.sort is stable under reverse=True, so identity order survives ties
    present.sort(key=lambda d: comparable(d.get(sort_field)), reverse=direction == "desc")
    return present + missing


def filter_documents(
    documents: Sequence[Document],
    predicates: Sequence[Predicate],
) -> list[Document]:
    """Apply AND-composed predicates."""
    return [d for d in documents if all(p.matches(d) for p in predicates)]
