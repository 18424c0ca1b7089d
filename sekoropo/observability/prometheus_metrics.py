"""Prometheus metrics for Sekoropo.

Covers the three core operations (fan-out merge, aggregation, mutation with
side effect) plus a generic per-operation counter used by the services.

Example usage:

    ```python
    from sekoropo.observability.prometheus_metrics import observe_operation

    with observe_operation("disputes.stats") as record_status:
        result = await compute()
        record_status("success")
    ```

Metrics exposed:
    - sekoropo_fanout_queries_total: Source queries issued by collection and status
    - sekoropo_merge_duration_seconds: Wall time of a full fan-out merge
    - sekoropo_merge_duplicates_total: Documents dropped by deduplication
    - sekoropo_side_effect_failures_total: Swallowed derived-write failures
    - sekoropo_operations_total: Operations by type and status
    - sekoropo_operation_duration_seconds: Operation duration by type
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock
from typing import Callable, Literal

from prometheus_client import CollectorRegistry, Counter, Histogram

logger = logging.getLogger(__name__)

_registry: CollectorRegistry | None = None
_registry_lock = Lock()
_enabled = True

_DURATION_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


def get_metrics_registry() -> CollectorRegistry:
    """Get or create the shared Prometheus registry for Sekoropo metrics."""
    global _registry

    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = CollectorRegistry()
                logger.info("Created Prometheus metrics registry")

    return _registry


def set_metrics_enabled(enabled: bool) -> None:
    """Turn recording on or off for the whole process."""
    global _enabled
    _enabled = enabled
    logger.info(f"Prometheus metrics {'enabled' if enabled else 'disabled'}")


def metrics_enabled() -> bool:
    return _enabled


# ============================================================================
# Fan-out Merge Metrics
# ============================================================================

fanout_queries_total: Counter = Counter(
    name="sekoropo_fanout_queries_total",
    documentation="Source queries issued by fan-out merges",
    labelnames=["collection", "status"],
    registry=get_metrics_registry(),
)

merge_duration_seconds: Histogram = Histogram(
    name="sekoropo_merge_duration_seconds",
    documentation="Duration of fan-out merges including all source queries",
    labelnames=["collection"],
    buckets=_DURATION_BUCKETS,
    registry=get_metrics_registry(),
)

merge_duplicates_total: Counter = Counter(
    name="sekoropo_merge_duplicates_total",
    documentation="Documents dropped because another source already returned them",
    labelnames=["collection"],
    registry=get_metrics_registry(),
)


def record_fanout_query(collection: str, status: Literal["success", "error"]) -> None:
    """Record one source query of a fan-out."""
    if not _enabled:
        return
    fanout_queries_total.labels(collection=collection, status=status).inc()


def record_merge_duplicates(collection: str, count: int) -> None:
    """Record documents removed during deduplication."""
    if _enabled and count > 0:
        merge_duplicates_total.labels(collection=collection).inc(count)


@contextmanager
def observe_merge(collection: str) -> Iterator[None]:
    """Time a fan-out merge."""
    start_time = time.time()
    try:
        yield
    finally:
        if _enabled:
            merge_duration_seconds.labels(collection=collection).observe(time.time() - start_time)


# ============================================================================
# Mutation Metrics
# ============================================================================

side_effect_failures_total: Counter = Counter(
    name="sekoropo_side_effect_failures_total",
    documentation="Derived writes that failed after a successful primary write",
    labelnames=["collection"],
    registry=get_metrics_registry(),
)


def record_side_effect_failure(collection: str | None) -> None:
    """Count a swallowed side-effect failure."""
    if not _enabled:
        return
    side_effect_failures_total.labels(collection=collection or "unknown").inc()


# ============================================================================
# General Operation Metrics
# ============================================================================

operations_total: Counter = Counter(
    name="sekoropo_operations_total",
    documentation="Total operations by type and status",
    labelnames=["operation_type", "status"],
    registry=get_metrics_registry(),
)

operation_duration: Histogram = Histogram(
    name="sekoropo_operation_duration_seconds",
    documentation="Operation duration in seconds",
    labelnames=["operation_type"],
    buckets=_DURATION_BUCKETS,
    registry=get_metrics_registry(),
)


@contextmanager
def observe_operation(
    operation_type: str,
) -> Iterator[Callable[[Literal["success", "error"]], None]]:
    """Context manager for measuring an operation's duration and status.

    Args:
        operation_type: Type of operation being measured

    Yields:
        A function to call with the operation status
    """
    start_time = time.time()

    def record_status(status: Literal["success", "error"]) -> None:
        if _enabled:
            operations_total.labels(operation_type=operation_type, status=status).inc()

    yield record_status

    if _enabled:
        operation_duration.labels(operation_type=operation_type).observe(time.time() - start_time)


# ============================================================================
# Exposition
# ============================================================================


def generate_metrics() -> bytes:
    """Generate Prometheus text exposition for the Sekoropo registry."""
    from prometheus_client import generate_latest

    return generate_latest(get_metrics_registry())


def get_sample_value(name: str, labels: dict[str, str] | None = None) -> float:
    """Current value of one sample, 0.0 when it has never been recorded."""
    value = get_metrics_registry().get_sample_value(name, labels or {})
    return value or 0.0


def get_metric_summary() -> dict[str, dict[str, float]]:
    """Summarize all samples as ``{metric_name: {labels: value}}``."""
    summary: dict[str, dict[str, float]] = {}
    for metric in get_metrics_registry().collect():
        for sample in metric.samples:
            labels = ",".join(f'{k}="{v}"' for k, v in sorted(sample.labels.items()))
            summary.setdefault(sample.name, {})[labels] = sample.value
    return summary


__all__ = [
    "fanout_queries_total",
    "generate_metrics",
    "get_metric_summary",
    "get_metrics_registry",
    "get_sample_value",
    "merge_duplicates_total",
    "merge_duration_seconds",
    "metrics_enabled",
    "observe_merge",
    "observe_operation",
    "operation_duration",
    "operations_total",
    "record_fanout_query",
    "record_merge_duplicates",
    "record_side_effect_failure",
    "set_metrics_enabled",
    "side_effect_failures_total",
]
