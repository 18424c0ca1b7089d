"""Fan-out query engine emulating OR over an AND-only document store."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sekoropo.errors import QueryFailure, SekoropoError, ValidationFailure
from sekoropo.models import ApiResult
from sekoropo.observability import add_span_attributes, traced
from sekoropo.observability.prometheus_metrics import (
    observe_merge,
    record_fanout_query,
    record_merge_duplicates,
)
from sekoropo.query.aggregator import MergedResultSet, QueryAggregator
from sekoropo.storage.base import supports_native_or

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sekoropo.models import Document, ListResult
    from sekoropo.storage.base import DocumentStore, OrCapableDocumentStore, QuerySpec, SortDirection

logger = logging.getLogger(__name__)


class FanOutQueryEngine:
    """Answers a logical OR of several queries by running them concurrently."""

    def __init__(self, store: DocumentStore) -> None:
        """Initialize fan-out engine.

        Args:
            store: Document store every source query runs against
        """
        self.store = store

    @traced("fanout_merge")
    async def merge(
        self,
        source_queries: Sequence[QuerySpec],
        identity_field: str = "id",
        sort_field: str = "created_at",
        sort_direction: SortDirection = "desc",
        limit: int = 20,
        offset: int = 0,
    ) -> MergedResultSet:
        """Run every source query and merge the results.

        Steps:
            1. Fan-out all source queries concurrently
            2. Fail the whole merge if any source failed
            3. Merge, deduplicate, sort and window with QueryAggregator

        Args:
            source_queries: Two or more queries whose union is wanted
            identity_field: Field that identifies a document across sources
            sort_field: Field to order the merged set by
            sort_direction: "asc" or "desc"
            limit: Page size
            offset: Page start within the merged set

        Returns:
            Merged result window

        Raises:
            ValidationFailure: Fewer than two sources or a negative window
            QueryFailure: A source query failed
        """
        if len(source_queries) < 2:
            raise ValidationFailure("A fan-out merge needs at least two source queries")
        if limit < 0 or offset < 0:
            raise ValidationFailure("limit and offset must be non-negative", limit=limit, offset=offset)

        collection = source_queries[0].collection
        add_span_attributes(
            {
                "fanout.collection": collection,
                "fanout.sources": len(source_queries),
                "fanout.sort_field": sort_field,
            }
        )

        with observe_merge(collection):
            store = self.store
            if supports_native_or(store) and self._single_collection(source_queries):
                return await self._merge_native(
                    store,
                    source_queries, identity_field, sort_field, sort_direction, limit, offset
                )

            results = await asyncio.gather(
                *(self._run_source(index, query) for index, query in enumerate(source_queries)),
                return_exceptions=True,
            )

            # Report the first failure in source order so the outcome does not
            # depend on which query finished first
            result_sets: list[list[Document]] = []
            total = 0
            for index, (query, result) in enumerate(zip(source_queries, results, strict=True)):
                if isinstance(result, BaseException):
                    raise QueryFailure(index, query, result) from result
                result_sets.append(result.documents)
                total += result.total

            page, deduplicated_total, duplicates = QueryAggregator.merge_results(
                result_sets,
                identity_field=identity_field,
                sort_field=sort_field,
                sort_direction=sort_direction,
                limit=limit,
                offset=offset,
            )

        record_merge_duplicates(collection, duplicates)
        logger.debug(
            f"Merged {len(source_queries)} sources on {collection}: "
            f"{deduplicated_total} unique, {duplicates} duplicates, page of {len(page)}"
        )

        return MergedResultSet(
            documents=page,
            total=total,
            deduplicated_total=deduplicated_total,
            limit=limit,
            offset=offset,
        )

    async def _run_source(self, index: int, query: QuerySpec) -> ListResult:
        """Execute one source query without pagination."""
        try:
            result = await self.store.list(query.collection, query.predicates)
        except Exception as e:
            logger.warning(f"Source query {index} on {query.collection} failed: {e}")
            record_fanout_query(query.collection, "error")
            raise

        record_fanout_query(query.collection, "success")
        logger.debug(f"Source {index} ({query.describe()}) returned {result.total} documents")
        return result

    async def _merge_native(
        self,
        store: OrCapableDocumentStore,
        source_queries: Sequence[QuerySpec],
        identity_field: str,
        sort_field: str,
        sort_direction: SortDirection,
        limit: int,
        offset: int,
    ) -> MergedResultSet:
        """Single native OR query for stores that support it."""
        collection = source_queries[0].collection
        try:
            result = await store.list_any(
                collection, [query.predicates for query in source_queries]
            )
        except Exception as e:
            record_fanout_query(collection, "error")
            raise QueryFailure(0, source_queries[0], e) from e

        record_fanout_query(collection, "success")
        page, deduplicated_total, _ = QueryAggregator.merge_results(
            [result.documents],
            identity_field=identity_field,
            sort_field=sort_field,
            sort_direction=sort_direction,
            limit=limit,
            offset=offset,
        )
        return MergedResultSet(
            documents=page,
            total=deduplicated_total,
            deduplicated_total=deduplicated_total,
            limit=limit,
            offset=offset,
        )

    @staticmethod
    def _single_collection(source_queries: Sequence[QuerySpec]) -> bool:
        return len({query.collection for query in source_queries}) == 1


async def merge_queries(
    store: DocumentStore,
    source_queries: Sequence[QuerySpec],
    identity_field: str = "id",
    sort_field: str = "created_at",
    sort_direction: SortDirection = "desc",
    limit: int = 20,
    offset: int = 0,
) -> ApiResult[MergedResultSet]:
    """Envelope-returning form of :meth:`FanOutQueryEngine.merge`."""
    try:
        merged = await FanOutQueryEngine(store).merge(
            source_queries,
            identity_field=identity_field,
            sort_field=sort_field,
            sort_direction=sort_direction,
            limit=limit,
            offset=offset,
        )
    except SekoropoError as e:
        logger.error(f"Fan-out merge failed: {e}")
        return ApiResult.fail(str(e))
    return ApiResult.ok(merged)
