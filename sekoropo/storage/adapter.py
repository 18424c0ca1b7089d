"""Parsing boundary between untyped store payloads and typed documents.

Backends hand back loosely typed dicts (``$id``-style system keys, JSON
blobs). Everything is converted to :class:`~sekoropo.models.Document` here so
that merge and aggregation code never sees raw payloads.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from sekoropo.errors import ValidationFailure
from sekoropo.models import Document, FieldValue

logger = logging.getLogger(__name__)

# Backend system keys mapped to document metadata
_SYSTEM_KEYS = {
    "$id": "id",
    "id": "id",
    "$collectionId": "collection",
    "$createdAt": "created_at",
    "$updatedAt": "updated_at",
}
_IGNORED_SYSTEM_KEYS = frozenset({"$databaseId", "$permissions", "$sequence"})


def normalize_value(name: str, value: Any) -> FieldValue:
    """Validate a single field value.

    Raises:
        ValidationFailure: If the value is not a scalar or an array of strings
    """
    if value is None or isinstance(value, str | bool | int | float):
        return value
    if isinstance(value, list | tuple):
        if all(isinstance(item, str) for item in value):
            return list(value)
        raise ValidationFailure(f"Field {name!r} must be an array of strings", field=name)
    raise ValidationFailure(
        f"Field {name!r} has unsupported type {type(value).__name__}", field=name
    )


def normalize_fields(fields: dict[str, Any]) -> dict[str, FieldValue]:
    """Validate every value of a field mapping, rejecting reserved names."""
    normalized: dict[str, FieldValue] = {}
    for name, value in fields.items():
        if name.startswith("$") or name in ("id", "collection"):
            raise ValidationFailure(f"Field name {name!r} is reserved", field=name)
        normalized[name] = normalize_value(name, value)
    return normalized


def parse_document(collection: str, payload: dict[str, Any]) -> Document:
    """Convert a raw store payload into a typed document.

    Args:
        collection: Collection the payload was read from
        payload: Raw mapping; system keys may use ``$`` prefixes

    Returns:
        Typed document

    Raises:
        ValidationFailure: If the identity is missing or a value is unsupported
    """
    metadata: dict[str, Any] = {"collection": collection}
    fields: dict[str, FieldValue] = {}

    for key, value in payload.items():
        if key in _IGNORED_SYSTEM_KEYS:
            continue
        target = _SYSTEM_KEYS.get(key)
        if target is not None:
            metadata[target] = value
        elif key in ("created_at", "updated_at"):
            # Plain timestamp columns are metadata unless a $-key already set it
            metadata.setdefault(key, value)
        elif key == "collection":
            continue
        else:
            fields[key] = normalize_value(key, value)

    if not metadata.get("id"):
        raise ValidationFailure(f"Payload from {collection} has no document id")

    try:
        return Document(fields=fields, **metadata)
    except ValidationError as e:
        logger.error(f"Rejected payload from {collection}: {e}")
        raise ValidationFailure(f"Malformed document in {collection}: {e}") from e
