"""Client-side statistics over fetched documents."""

from sekoropo.processing.aggregation import (
    CURRENCY_DECIMALS,
    HOURS_DECIMALS,
    RATING_DECIMALS,
    AggregationResult,
    AggregationSpec,
    GroupedSumSpec,
    RatingSummary,
    TimeDeltaResult,
    TimeDeltaSpec,
    aggregate,
    aggregate_documents,
    round_half_away,
    summarize_ratings,
)

__all__ = [
    "AggregationResult",
    "AggregationSpec",
    "CURRENCY_DECIMALS",
    "GroupedSumSpec",
    "HOURS_DECIMALS",
    "RATING_DECIMALS",
    "RatingSummary",
    "TimeDeltaResult",
    "TimeDeltaSpec",
    "aggregate",
    "aggregate_documents",
    "round_half_away",
    "summarize_ratings",
]
