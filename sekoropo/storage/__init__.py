"""Sekoropo storage layer."""

from sekoropo.storage.adapter import normalize_fields, normalize_value, parse_document
from sekoropo.storage.base import (
    DocumentStore,
    Operator,
    OrCapableDocumentStore,
    Predicate,
    QuerySpec,
    SortSpec,
    comparable,
    filter_documents,
    parse_timestamp,
    sort_documents,
    supports_native_or,
)
from sekoropo.storage.duckdb_store import DuckDBDocumentStore
from sekoropo.storage.memory_store import InMemoryDocumentStore

__all__ = [
    "comparable",
    "DocumentStore",
    "DuckDBDocumentStore",
    "filter_documents",
    "InMemoryDocumentStore",
    "normalize_fields",
    "normalize_value",
    "Operator",
    "OrCapableDocumentStore",
    "parse_document",
    "parse_timestamp",
    "Predicate",
    "QuerySpec",
    "sort_documents",
    "SortSpec",
    "supports_native_or",
]
