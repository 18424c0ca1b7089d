"""OpenTelemetry tracing helpers.

Without ``setup_telemetry`` the global no-op tracer provider is used, so the
decorators cost almost nothing in tests and library use.
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Callable, TypeVar

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_TRACER_NAME = "sekoropo"
_provider: TracerProvider | None = None

AttributeValue = str | bool | int | float


def setup_telemetry(
    service_name: str = "sekoropo",
    enable_console_export: bool = False,
) -> TracerProvider:
    """Install an SDK tracer provider for this process.

    Args:
        service_name: Value of the ``service.name`` resource attribute
        enable_console_export: Print finished spans to stdout

    Returns:
        The installed tracer provider
    """
    global _provider

    if _provider is not None:
        return _provider

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))
    if enable_console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    _provider = provider
    logger.info(f"Telemetry initialized for {service_name}")
    return provider


def shutdown_telemetry() -> None:
    """Flush and shut down the tracer provider installed by setup_telemetry."""
    global _provider

    if _provider is not None:
        _provider.shutdown()
        _provider = None
        logger.info("Telemetry shut down")


def get_tracer() -> trace.Tracer:
    """Tracer for Sekoropo spans."""
    return trace.get_tracer(_TRACER_NAME)


def add_span_attributes(attributes: dict[str, AttributeValue]) -> None:
    """Attach attributes to the current span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attributes(attributes)


def add_span_event(name: str, attributes: dict[str, AttributeValue] | None = None) -> None:
    """Record an event on the current span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, attributes=attributes or {})


@contextmanager
def trace_operation(
    name: str,
    attributes: dict[str, AttributeValue] | None = None,
) -> Iterator[trace.Span]:
    """Run a block inside a new span."""
    with get_tracer().start_as_current_span(name, attributes=attributes) as span:
        yield span


def traced(name: str) -> Callable[[F], F]:
    """Decorate a sync or async callable so each call runs in its own span."""

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                with get_tracer().start_as_current_span(name):
                    return await func(*args, **kwargs)

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            with get_tracer().start_as_current_span(name):
                return func(*args, **kwargs)

        return sync_wrapper  # type: ignore[return-value]

    return decorator
