"""Shared plumbing for the domain services.

Every public service method returns an ``ApiResult``. Errors raised inside a
method are caught once, here, and turned into an envelope failure carrying the
exception text, or the operation's default message when the text is empty.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from sekoropo.errors import SekoropoError, ValidationFailure
from sekoropo.models import ApiResult, Document
from sekoropo.observability import add_span_attributes, trace_operation
from sekoropo.observability.prometheus_metrics import observe_operation
from sekoropo.orchestration.mutation import MutationOrchestrator
from sekoropo.query.fanout import FanOutQueryEngine
from sekoropo.storage.base import Predicate, QuerySpec, SortSpec

if TYPE_CHECKING:
    from sekoropo.config import SekoropoConfig
    from sekoropo.models.schemas import DateRange
    from sekoropo.query.aggregator import MergedResultSet
    from sekoropo.storage.base import DocumentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


@dataclass
class Page:
    """One page of documents plus the number of matches."""

    documents: list[Document] = field(default_factory=list)
    total: int = 0
    limit: int = 20
    offset: int = 0


def validate_request(model: type[M], data: M | dict[str, Any]) -> M:
    """Coerce a dict (or pass through a model) into a validated request.

    Raises:
        ValidationFailure: The input does not satisfy the schema
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'request'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationFailure(f"Invalid {model.__name__}: {problems}") from e


def date_range_predicates(date_range: DateRange | None, field_name: str = "created_at") -> list[Predicate]:
    """Inclusive range predicates on ``field_name``, or none."""
    if date_range is None:
        return []
    return [
        Predicate.greater_equal(field_name, date_range.start),
        Predicate.less_equal(field_name, date_range.end),
    ]


class BaseService:
    """Base class wiring a service to its store, config and core engines.

    Attributes:
        name: Prefix for metric and span names ("jobs.create")
        collection: Primary collection of the service
    """

    name = "service"

    def __init__(
        self,
        store: DocumentStore,
        config: SekoropoConfig,
        engine: FanOutQueryEngine | None = None,
        orchestrator: MutationOrchestrator | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.collections = config.collections
        self.engine = engine or FanOutQueryEngine(store)
        self.orchestrator = orchestrator or MutationOrchestrator(store)

    @property
    def collection(self) -> str:
        return getattr(self.collections, self.name)

    @property
    def default_limit(self) -> int:
        return self.config.query.default_limit

    async def _guard(
        self,
        operation: str,
        default_error: str,
        call: Callable[[], Awaitable[T]],
    ) -> ApiResult[T]:
        """Run ``call`` and wrap its outcome in an envelope."""
        operation_type = f"{self.name}.{operation}"
        with observe_operation(operation_type) as record_status, trace_operation(operation_type):
            try:
                data = await call()
            except SekoropoError as e:
                record_status("error")
                message = str(e) or default_error
                logger.warning(f"{operation_type} failed: {message}")
                add_span_attributes({"error": True})
                return ApiResult.fail(message)
            except Exception as e:
                record_status("error")
                message = str(e) or default_error
                logger.exception(f"{operation_type} failed unexpectedly: {message}")
                add_span_attributes({"error": True})
                return ApiResult.fail(message)
            record_status("success")
        return ApiResult.ok(data)

    async def _page(
        self,
        predicates: Sequence[Predicate],
        limit: int | None = None,
        offset: int = 0,
        sort_field: str = "created_at",
        collection: str | None = None,
    ) -> Page:
        """List one page from a single AND query, newest first."""
        limit = self.default_limit if limit is None else limit
        if limit < 0 or offset < 0:
            raise ValidationFailure("limit and offset must be non-negative", limit=limit, offset=offset)
        result = await self.store.list(
            collection or self.collection,
            predicates,
            sort=SortSpec(sort_field, "desc"),
            limit=limit,
            offset=offset,
        )
        return Page(documents=result.documents, total=result.total, limit=limit, offset=offset)

    async def _all(
        self,
        predicates: Sequence[Predicate] = (),
        sort_field: str = "created_at",
        collection: str | None = None,
    ) -> list[Document]:
        """Every matching document, newest first, capped by ``stats_scan_limit``."""
        result = await self.store.list(
            collection or self.collection,
            predicates,
            sort=SortSpec(sort_field, "desc"),
            limit=self.config.query.stats_scan_limit,
        )
        if result.total > len(result.documents):
            logger.warning(
                f"{self.name}: scanned {len(result.documents)} of {result.total} documents "
                "(stats_scan_limit reached)"
            )
        return result.documents

    async def _count(self, predicates: Sequence[Predicate], collection: str | None = None) -> int:
        result = await self.store.list(collection or self.collection, predicates, limit=0)
        return result.total

    async def _merge(
        self,
        branches: Sequence[Sequence[Predicate]],
        common: Sequence[Predicate] = (),
        limit: int | None = None,
        offset: int = 0,
        sort_field: str = "created_at",
        collection: str | None = None,
    ) -> MergedResultSet:
        """OR of ``branches``, each AND-ed with ``common``, through the fan-out merger."""
        target = collection or self.collection
        queries = [QuerySpec(target, (*common, *branch)) for branch in branches]
        return await self.engine.merge(
            queries,
            sort_field=sort_field,
            sort_direction="desc",
            limit=self.default_limit if limit is None else limit,
            offset=offset,
        )
