"""Sekoropo application wiring and lifecycle."""

from __future__ import annotations

import logging
from typing import Any

from sekoropo.config import SekoropoConfig, get_config, validate_store_config
from sekoropo.errors import StoreError
from sekoropo.observability import setup_telemetry, shutdown_telemetry
from sekoropo.observability.prometheus_metrics import set_metrics_enabled
from sekoropo.realtime import SubscriptionManager
from sekoropo.services import Services
from sekoropo.storage import DocumentStore, DuckDBDocumentStore, InMemoryDocumentStore

logger = logging.getLogger(__name__)


async def open_store(config: SekoropoConfig) -> DocumentStore:
    """Create and initialize the configured document store.

    Raises:
        StoreError: The store directory cannot be created
    """
    if config.store.backend == "memory":
        logger.info("Using in-memory document store")
        return InMemoryDocumentStore()

    if not validate_store_config(config):
        raise StoreError(f"Cannot open DuckDB store at {config.store.path}")

    store = DuckDBDocumentStore(database_path=config.store.path)
    await store.initialize()
    logger.info(f"Using DuckDB document store at {config.store.path}")
    return store


class SekoropoApplication:
    """Sekoropo application with lifecycle management.

    Owns the document store, the domain services and the realtime
    subscription registry. Use as an async context manager, or call
    ``start()`` and ``stop()``.

    Attributes:
        config: Active configuration
        store: Document store (None until started)
        services: Domain services (None until started)
        subscriptions: Realtime subscriptions to cancel on shutdown
    """

    def __init__(self, config: SekoropoConfig | None = None) -> None:
        self.config = config or get_config()
        self.store: DocumentStore | None = None
        self.services: Services | None = None
        self.subscriptions = SubscriptionManager()

    async def start(self) -> Services:
        """Open the store and wire the services."""
        logger.info(f"Starting Sekoropo ({self.config.environment})")

        set_metrics_enabled(self.config.metrics_enabled)
        if self.config.telemetry_enabled:
            setup_telemetry(enable_console_export=self.config.debug)

        self.store = await open_store(self.config)
        self.services = Services.create(self.store, self.config)
        logger.info(f"Sekoropo started with {self.config.store.backend} store")
        return self.services

    async def stop(self) -> None:
        """Cancel subscriptions and close the store."""
        self.subscriptions.dispose_all()

        if self.store is not None:
            close = getattr(self.store, "close", None)
            if close is not None:
                await close()
            self.store = None
        self.services = None

        if self.config.telemetry_enabled:
            shutdown_telemetry()
        logger.info("Sekoropo stopped")

    async def __aenter__(self) -> Services:
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()
