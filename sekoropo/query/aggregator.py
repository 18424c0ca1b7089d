"""Query result aggregator for merging fan-out results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sekoropo.storage.base import sort_documents

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sekoropo.models import Document
    from sekoropo.storage.base import SortDirection


@dataclass
class MergedResultSet:
    """One window of a merged, deduplicated and sorted result set.

    Attributes:
        documents: Page of documents, unique by identity
        total: Sum of each source query's total (may overcount overlaps)
        deduplicated_total: Number of distinct documents across all sources
        limit: Requested page size
        offset: Requested page start
    """

    documents: list[Document] = field(default_factory=list)
    total: int = 0
    deduplicated_total: int = 0
    limit: int = 20
    offset: int = 0


class QueryAggregator:
    """Aggregator for merging results from multiple source queries."""

    @staticmethod
    def deduplicate(
        result_sets: Sequence[Sequence[Document]],
        identity_field: str = "id",
    ) -> tuple[list[Document], int]:
        """Flatten result sets in source order and drop repeated identities.

        The first occurrence of an identity wins. Documents without an
        identity are dropped.

        Returns:
            Unique documents and the number of duplicates removed
        """
        seen: set[object] = set()
        unique: list[Document] = []
        duplicates = 0

        for result_set in result_sets:
            for document in result_set:
                identity = document.get(identity_field)
                if identity is None:
                    continue
                if identity in seen:
                    duplicates += 1
                    continue
                seen.add(identity)
                unique.append(document)

        return unique, duplicates

    @staticmethod
    def merge_results(
        result_sets: Sequence[Sequence[Document]],
        identity_field: str = "id",
        sort_field: str = "created_at",
        sort_direction: SortDirection = "desc",
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Document], int, int]:
        """Merge, deduplicate, sort and window results from multiple sources.

        Steps:
            1. Flatten results from all sources in source order
            2. Deduplicate by identity (first occurrence wins)
            3. Sort by ``sort_field``, ties broken by identity ascending
            4. Slice ``[offset, offset + limit)``

        Returns:
            The page, the deduplicated count and the number of duplicates dropped
        """
        unique, duplicates = QueryAggregator.deduplicate(result_sets, identity_field)
        ordered = sort_documents(unique, sort_field, sort_direction, identity_field)
        return ordered[offset : offset + limit], len(ordered), duplicates
