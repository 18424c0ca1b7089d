"""Sekoropo query layer for fan-out OR emulation and result merging."""

from sekoropo.query.aggregator import MergedResultSet, QueryAggregator
from sekoropo.query.fanout import FanOutQueryEngine, merge_queries

__all__ = [
    "FanOutQueryEngine",
    "MergedResultSet",
    "QueryAggregator",
    "merge_queries",
]
