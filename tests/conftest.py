"""Pytest configuration and fixtures for Sekoropo tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from typing import Any

import pytest

from sekoropo.config import SekoropoConfig
from sekoropo.models import Document
from sekoropo.observability.prometheus_metrics import set_metrics_enabled
from sekoropo.services import Services
from sekoropo.storage import DuckDBDocumentStore, InMemoryDocumentStore


@pytest.fixture(scope="session", autouse=True)
def setup_telemetry() -> Iterator[None]:
    """Setup OpenTelemetry for all tests.

    Runs once per session so spans are recorded by a real SDK provider
    without any exporter attached.
    """
    from sekoropo.observability.tracing import setup_telemetry

    setup_telemetry(service_name="sekoropo-test", enable_console_export=False)

    yield

    # No explicit shutdown; a later test may still end a span


@pytest.fixture(autouse=True)
def metrics_on() -> Iterator[None]:
    """Re-enable metrics after tests that start an app with metrics disabled."""
    yield
    set_metrics_enabled(True)


@pytest.fixture
def config() -> SekoropoConfig:
    """Configuration isolated from the developer's environment and .env file."""
    return SekoropoConfig(_env_file=None)


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
async def duckdb_store() -> AsyncIterator[DuckDBDocumentStore]:
    """In-process DuckDB store, closed after the test."""
    db = DuckDBDocumentStore(database_path=":memory:")
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def services(store: InMemoryDocumentStore, config: SekoropoConfig) -> Services:
    return Services.create(store, config)


def make_document(document_id: str, collection: str = "disputes", **fields: Any) -> Document:
    """Build a document directly, splitting out store-managed timestamps."""
    created_at = fields.pop("created_at", None)
    updated_at = fields.pop("updated_at", None)
    return Document(
        id=document_id,
        collection=collection,
        fields=fields,
        created_at=created_at,
        updated_at=updated_at,
    )


@pytest.fixture
def document_factory():
    """Factory fixture for building documents inline in tests."""
    return make_document
