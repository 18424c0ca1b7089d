"""Single-pass statistical aggregation over fetched documents.

The document store has no aggregation queries, so counts, sums, averages,
distributions and resolution-time statistics are reduced client-side. Every
requested output is computed in one traversal of the input.

Sums are accumulated as ``Decimal`` (and durations as integer microseconds)
so results do not depend on input order. Rounding happens once, after
division, with round-half-away-from-zero.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sekoropo.errors import SekoropoError, ValidationFailure
from sekoropo.models import ApiResult, Document
from sekoropo.observability import add_span_attributes, traced
from sekoropo.storage.base import parse_timestamp, sort_documents

logger = logging.getLogger(__name__)

RATING_DECIMALS = 1
CURRENCY_DECIMALS = 2
HOURS_DECIMALS = 2

_MICROSECONDS_PER_HOUR = Decimal(3_600_000_000)

StatBucket = dict[Any, int]


def round_half_away(value: Decimal | float | int, decimals: int) -> float:
    """Round to ``decimals`` places, halves away from zero (2.25 -> 2.3)."""
    quantum = Decimal(1).scaleb(-decimals)
    exact = value if isinstance(value, Decimal) else Decimal(str(value))
    return float(exact.quantize(quantum, rounding=ROUND_HALF_UP))


def _as_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return Decimal(str(value))


def _bucket_key(value: Any) -> Any:
    return tuple(value) if isinstance(value, list) else value


@dataclass(frozen=True)
class TimeDeltaSpec:
    """Elapsed time between two timestamp fields, averaged in hours.

    Attributes:
        start_field: Field holding the start timestamp
        end_field: Field holding the end timestamp
        predicate: Only documents for which this returns True are measured
        decimals: Decimal places of the reported average
    """

    start_field: str
    end_field: str
    predicate: Callable[[Document], bool] | None = None
    decimals: int = HOURS_DECIMALS


@dataclass(frozen=True)
class GroupedSumSpec:
    """Sum of ``value_field`` bucketed by the exact value of ``key_field``."""

    value_field: str
    key_field: str


@dataclass(frozen=True)
class AggregationSpec:
    """Which statistics to compute.

    Attributes:
        count: Count scanned documents
        sum: Field to sum
        average: Field to average
        distribution: Field (or fields) to build a frequency histogram for
        time_delta: Elapsed-time statistics
        grouped_sum: Sum of one field per value of another
        average_decimals: Decimal places of the average (1 ratings, 2 money)
    """

    count: bool = True
    sum: str | None = None
    average: str | None = None
    distribution: str | Sequence[str] | None = None
    time_delta: TimeDeltaSpec | None = None
    grouped_sum: GroupedSumSpec | None = None
    average_decimals: int = RATING_DECIMALS

    def distribution_fields(self) -> tuple[str, ...]:
        if self.distribution is None:
            return ()
        if isinstance(self.distribution, str):
            return (self.distribution,)
        return tuple(self.distribution)


@dataclass
class TimeDeltaResult:
    """Elapsed-time statistics."""

    count: int = 0
    total_hours: float = 0.0
    average_hours: float = 0.0


@dataclass
class AggregationResult:
    """Results of a single aggregation pass.

    ``distribution`` is the histogram of the first requested distribution
    field; ``distributions`` holds all of them keyed by field name.
    """

    count: int = 0
    sum: float | None = None
    average: float | None = None
    distribution: StatBucket | None = None
    distributions: dict[str, StatBucket] = field(default_factory=dict)
    time_delta: TimeDeltaResult | None = None
    grouped_sums: dict[Any, float] | None = None


@dataclass
class RatingSummary:
    """Rating statistics for one reviewee."""

    average_rating: float = 0.0
    total_reviews: int = 0
    distribution: StatBucket = field(default_factory=dict)
    recent: list[Document] = field(default_factory=list)


def _validate(spec: AggregationSpec) -> None:
    if spec.average_decimals < 0:
        raise ValidationFailure("average_decimals must be non-negative")
    if spec.time_delta is not None and spec.time_delta.decimals < 0:
        raise ValidationFailure("time_delta.decimals must be non-negative")


@traced("aggregate")
def aggregate(documents: Iterable[Document], spec: AggregationSpec) -> AggregationResult:
    """Compute every statistic requested by ``spec`` in one pass.

    Args:
        documents: Documents to reduce (any iterable, consumed once)
        spec: Requested outputs

    Returns:
        Aggregation result; outputs not requested are left as None

    Raises:
        ValidationFailure: If the spec is malformed
    """
    _validate(spec)

    distribution_fields = spec.distribution_fields()
    time_spec = spec.time_delta
    grouped_spec = spec.grouped_sum

    count = 0
    total = Decimal(0)
    average_total = Decimal(0)
    average_count = 0
    buckets: dict[str, StatBucket] = {name: {} for name in distribution_fields}
    delta_microseconds = 0
    delta_count = 0
    grouped: dict[Any, Decimal] = {}

    for document in documents:
        count += 1

        if spec.sum is not None:
            value = _as_decimal(document.get(spec.sum))
            if value is not None:
                total += value

        if spec.average is not None:
            value = _as_decimal(document.get(spec.average))
            if value is not None:
                average_total += value
                average_count += 1

        for name in distribution_fields:
            key = document.get(name)
            if key is not None:
                key = _bucket_key(key)
                buckets[name][key] = buckets[name].get(key, 0) + 1

        if time_spec is not None and (time_spec.predicate is None or time_spec.predicate(document)):
            start = document.get(time_spec.start_field)
            end = document.get(time_spec.end_field)
            started = parse_timestamp(start) if isinstance(start, str) else None
            ended = parse_timestamp(end) if isinstance(end, str) else None
            if started is not None and ended is not None:
                delta_microseconds += (ended - started) // timedelta(microseconds=1)
                delta_count += 1

        if grouped_spec is not None:
            key = document.get(grouped_spec.key_field)
            value = _as_decimal(document.get(grouped_spec.value_field))
            if key is not None and value is not None:
                key = _bucket_key(key)
                grouped[key] = grouped.get(key, Decimal(0)) + value

    result = AggregationResult(count=count if spec.count else 0)

    if spec.sum is not None:
        result.sum = float(total)

    if spec.average is not None:
        result.average = (
            round_half_away(average_total / average_count, spec.average_decimals)
            if average_count
            else 0.0
        )

    if distribution_fields:
        result.distributions = buckets
        result.distribution = buckets[distribution_fields[0]]

    if time_spec is not None:
        total_hours = Decimal(delta_microseconds) / _MICROSECONDS_PER_HOUR
        result.time_delta = TimeDeltaResult(
            count=delta_count,
            total_hours=float(total_hours),
            average_hours=(
                round_half_away(total_hours / delta_count, time_spec.decimals) if delta_count else 0.0
            ),
        )

    if grouped_spec is not None:
        result.grouped_sums = {key: float(value) for key, value in grouped.items()}

    add_span_attributes({"aggregate.documents": count})
    return result


def summarize_ratings(
    documents: Sequence[Document],
    recent: int = 5,
    rating_field: str = "rating",
    decimals: int = RATING_DECIMALS,
) -> RatingSummary:
    """Average, count, distribution and most recent reviews for a reviewee."""
    stats = aggregate(
        documents,
        AggregationSpec(
            count=True,
            average=rating_field,
            distribution=rating_field,
            average_decimals=decimals,
        ),
    )
    newest = sort_documents(documents, "created_at", "desc")[:recent]
    return RatingSummary(
        average_rating=stats.average or 0,
        total_reviews=stats.count,
        distribution=stats.distribution or {},
        recent=newest,
    )


def aggregate_documents(
    documents: Iterable[Document],
    spec: AggregationSpec,
) -> ApiResult[AggregationResult]:
    """Envelope-returning form of :func:`aggregate`."""
    try:
        return ApiResult.ok(aggregate(documents, spec))
    except SekoropoError as e:
        logger.error(f"Aggregation failed: {e}")
        return ApiResult.fail(str(e))
    except Exception as e:
        logger.exception(f"Aggregation failed unexpectedly: {e}")
        return ApiResult.fail(str(e) or "Aggregation failed")
