"""Tests for the shared service plumbing."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock

import pytest

from sekoropo.config import SekoropoConfig
from sekoropo.errors import SekoropoError, ValidationFailure
from sekoropo.models.schemas import CreateReviewRequest, DateRange
from sekoropo.services import BaseService, Services, validate_request
from sekoropo.services.base import date_range_predicates
from sekoropo.storage import InMemoryDocumentStore


class TestValidateRequest:
    def test_passes_models_through(self) -> None:
        window = DateRange(start="2024-01-01T00:00:00Z", end="2024-01-02T00:00:00Z")

        assert validate_request(DateRange, window) is window

    def test_collects_every_problem(self) -> None:
        with pytest.raises(ValidationFailure) as exc_info:
            validate_request(CreateReviewRequest, {"job_id": "j1", "rating": 9})

        message = str(exc_info.value)
        assert message.startswith("Invalid CreateReviewRequest: ")
        assert "rating" in message
        assert "reviewer_id" in message

    def test_date_range_must_be_timestamps(self) -> None:
        with pytest.raises(ValidationFailure):
            validate_request(DateRange, {"start": "yesterday", "end": "2024-01-01T00:00:00Z"})

    def test_date_range_predicates(self) -> None:
        window = DateRange(start="2024-01-01T00:00:00Z", end="2024-01-02T00:00:00Z")

        predicates = date_range_predicates(window, "posted_at")

        assert [p.field for p in predicates] == ["posted_at", "posted_at"]
        assert date_range_predicates(None) == []


class EchoService(BaseService):
    name = "jobs"


class TestBaseService:
    """Test suite for BaseService."""

    @pytest.fixture
    def service(self, store: InMemoryDocumentStore, config: SekoropoConfig) -> EchoService:
        return EchoService(store, config)

    @pytest.mark.asyncio
    async def test_guard_wraps_success(self, service: EchoService) -> None:
        async def call() -> int:
            return 42

        result = await service._guard("answer", "Failed", call)

        assert result.success
        assert result.data == 42

    @pytest.mark.asyncio
    async def test_guard_uses_default_message(self, service: EchoService) -> None:
        async def call() -> None:
            raise SekoropoError()

        result = await service._guard("broken", "Failed to do the thing", call)

        assert not result.success
        assert result.error == "Failed to do the thing"

    @pytest.mark.asyncio
    async def test_guard_wraps_unexpected_errors(
        self, service: EchoService, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that errors from outside the Sekoropo taxonomy still become envelopes."""

        async def call() -> None:
            raise KeyError("bug")

        with caplog.at_level(logging.ERROR, logger="sekoropo.services.base"):
            result = await service._guard("buggy", "Failed", call)

        assert not result.success
        assert result.error == "'bug'"
        assert "jobs.buggy failed unexpectedly" in caplog.text

    @pytest.mark.asyncio
    async def test_guard_default_message_for_empty_unexpected_error(self, service: EchoService) -> None:
        async def call() -> None:
            raise RuntimeError()

        result = await service._guard("broken", "Failed to do the thing", call)

        assert result.error == "Failed to do the thing"

    @pytest.mark.asyncio
    async def test_page_rejects_negative_window(self, service: EchoService) -> None:
        with pytest.raises(ValidationFailure):
            await service._page([], limit=-1)

    @pytest.mark.asyncio
    async def test_all_warns_when_capped(
        self, store: InMemoryDocumentStore, caplog: pytest.LogCaptureFixture
    ) -> None:
        config = SekoropoConfig(_env_file=None, query={"stats_scan_limit": 2})
        service = EchoService(store, config)
        for index in range(3):
            await store.create("jobs", {"n": index})

        with caplog.at_level(logging.WARNING, logger="sekoropo.services.base"):
            documents = await service._all()

        assert len(documents) == 2
        assert "stats_scan_limit reached" in caplog.text


class TestServicesContainer:
    def test_services_share_core_engines(self, services: Services) -> None:
        assert services.jobs.engine is services.disputes.engine
        assert services.reviews.orchestrator is services.payments.orchestrator
        assert services.admin.collection == "platform_settings"
        assert services.messages.collection == "messages"


class TestBackendFailures:
    """A backend raising raw exceptions must never escape a service."""

    @pytest.fixture
    def failing_services(self, config: SekoropoConfig) -> Services:
        store = AsyncMock()
        store.supports_or = False
        store.get.side_effect = ConnectionError("backend unavailable")
        store.list.side_effect = ConnectionError("backend unavailable")
        store.create.side_effect = ConnectionError("backend unavailable")
        return Services.create(store, config)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("service_name", "method", "args"),
        [
            ("jobs", "get", ("j1",)),
            ("jobs", "search", ()),
            ("reviews", "rating_stats", ("U",)),
            ("disputes", "stats", ()),
            ("disputes", "list", ({"user_id": "U"},)),
            ("applications", "update_status", ("a1", "accepted")),
            ("payments", "stats", ()),
            ("messages", "unread_count", ("U",)),
            ("notifications", "unread_count", ("U",)),
            ("profiles", "by_user_id", ("U",)),
            ("admin", "dashboard_stats", ()),
            ("admin", "update_platform_settings", ({"maintenance_mode": True},)),
        ],
    )
    async def test_returns_failure_envelope(
        self, failing_services: Services, service_name: str, method: str, args: tuple
    ) -> None:
        service = getattr(failing_services, service_name)

        result = await getattr(service, method)(*args)

        assert not result.success
        assert result.data is None
        assert "backend unavailable" in result.error
