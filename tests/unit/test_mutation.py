"""Tests for the mutation orchestrator and status transitions."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from sekoropo.errors import MutationFailure, ValidationFailure
from sekoropo.models import Document
from sekoropo.observability.prometheus_metrics import get_sample_value
from sekoropo.orchestration import (
    MutationOperation,
    MutationOrchestrator,
    MutationSpec,
    is_terminal,
    mutate_with_side_effect,
    validate_transition,
)
from sekoropo.storage import InMemoryDocumentStore

SIDE_EFFECT_LOGGER = "sekoropo.orchestration.mutation"


def _side_effect_failures(collection: str) -> float:
    return get_sample_value("sekoropo_side_effect_failures_total", {"collection": collection})


class TestMutationSpec:
    def test_constructors(self) -> None:
        fields = {"rating": 4}
        spec = MutationSpec.create("reviews", fields)
        fields["rating"] = 1

        assert spec.operation is MutationOperation.CREATE
        assert spec.document_id is None
        # MutationSpec holds its own copy
        assert spec.fields == {"rating": 4}
        assert MutationSpec.delete("reviews", "r1").fields == {}


class TestMutationOrchestrator:
    """Test suite for MutationOrchestrator."""

    @pytest.fixture
    def orchestrator(self, store: InMemoryDocumentStore) -> MutationOrchestrator:
        return MutationOrchestrator(store)

    @pytest.mark.asyncio
    async def test_create_stamps_timestamps(self, orchestrator: MutationOrchestrator) -> None:
        document = await orchestrator.execute(MutationSpec.create("jobs", {"title": "A"}))

        assert document.created_at is not None
        assert document.updated_at == document.created_at

    @pytest.mark.asyncio
    async def test_caller_timestamps_win(self, orchestrator: MutationOrchestrator) -> None:
        document = await orchestrator.execute(
            MutationSpec.create("jobs", {"title": "A", "created_at": "2024-01-01T00:00:00+00:00"})
        )

        assert document.created_at == "2024-01-01T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_delete_returns_snapshot(
        self, orchestrator: MutationOrchestrator, store: InMemoryDocumentStore
    ) -> None:
        """Test that a delete hands the pre-delete document to the deriver."""
        await store.create("reviews", {"reviewee_id": "u2", "rating": 3}, "r1")
        seen: list[Document] = []

        def derive(review: Document) -> None:
            seen.append(review)

        result = await orchestrator.execute(MutationSpec.delete("reviews", "r1"), derive)

        assert result.get("reviewee_id") == "u2"
        assert seen[0].id == "r1"
        assert (await store.list("reviews")).total == 0

    @pytest.mark.asyncio
    async def test_update_requires_document_id(self, orchestrator: MutationOrchestrator) -> None:
        with pytest.raises(MutationFailure) as exc_info:
            await orchestrator.execute(MutationSpec(MutationOperation.UPDATE, "jobs", None, {"a": 1}))

        assert isinstance(exc_info.value.cause, ValidationFailure)

    @pytest.mark.asyncio
    async def test_primary_failure_skips_side_effect(self, orchestrator: MutationOrchestrator) -> None:
        """Test that the deriver is never called when the primary write fails."""
        derive = MagicMock()

        with pytest.raises(MutationFailure) as exc_info:
            await orchestrator.execute(MutationSpec.update("jobs", "missing", {"status": "open"}), derive)

        derive.assert_not_called()
        assert exc_info.value.operation == "update"
        assert exc_info.value.document_id == "missing"

    @pytest.mark.asyncio
    async def test_sync_side_effect_applied(
        self, orchestrator: MutationOrchestrator, store: InMemoryDocumentStore
    ) -> None:
        await store.create("profiles", {"total_reviews": 0}, "u2")

        await orchestrator.execute(
            MutationSpec.create("reviews", {"reviewee_id": "u2", "rating": 5}),
            lambda review: MutationSpec.update("profiles", review.get("reviewee_id"), {"total_reviews": 1}),
        )

        assert (await store.get("profiles", "u2")).get("total_reviews") == 1

    @pytest.mark.asyncio
    async def test_async_side_effect_applied(
        self, orchestrator: MutationOrchestrator, store: InMemoryDocumentStore
    ) -> None:
        await store.create("jobs", {"status": "assigned"}, "j1")

        async def derive(payment: Document) -> MutationSpec:
            return MutationSpec.update("jobs", payment.get("job_id"), {"payment_status": payment.get("status")})

        await orchestrator.execute(MutationSpec.create("payments", {"job_id": "j1", "status": "pending"}), derive)

        assert (await store.get("jobs", "j1")).get("payment_status") == "pending"

    @pytest.mark.asyncio
    async def test_none_means_no_write(self, store: InMemoryDocumentStore) -> None:
        spy = AsyncMock(wraps=store)
        orchestrator = MutationOrchestrator(spy)

        await orchestrator.execute(MutationSpec.create("jobs", {"title": "A"}), lambda _: None)

        spy.create.assert_awaited_once()
        spy.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_side_effect_write_is_isolated(
        self,
        orchestrator: MutationOrchestrator,
        store: InMemoryDocumentStore,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that a failing derived write leaves the primary write and reports success."""
        before = _side_effect_failures("profiles")

        with caplog.at_level(logging.WARNING, logger=SIDE_EFFECT_LOGGER):
            result = await orchestrator.execute(
                MutationSpec.create("reviews", {"reviewee_id": "ghost", "rating": 4}, "r1"),
                lambda review: MutationSpec.update("profiles", "ghost", {"total_reviews": 1}),
            )

        assert result.id == "r1"
        assert (await store.get("reviews", "r1")).get("rating") == 4
        assert _side_effect_failures("profiles") == before + 1
        records = [r for r in caplog.records if r.name == SIDE_EFFECT_LOGGER]
        assert len(records) == 1
        assert records[0].levelno == logging.WARNING
        assert "primary write kept" in records[0].getMessage()

    @pytest.mark.asyncio
    async def test_failed_derivation_is_isolated(
        self, orchestrator: MutationOrchestrator, caplog: pytest.LogCaptureFixture
    ) -> None:
        before = _side_effect_failures("unknown")

        def derive(_: Document) -> MutationSpec:
            raise RuntimeError("cannot derive")

        with caplog.at_level(logging.WARNING, logger=SIDE_EFFECT_LOGGER):
            result = await orchestrator.execute(MutationSpec.create("reviews", {"rating": 4}), derive)

        assert result.get("rating") == 4
        assert _side_effect_failures("unknown") == before + 1
        assert "cannot derive" in caplog.text


class TestMutateWithSideEffect:
    """Test suite for the envelope-returning orchestrator."""

    @pytest.mark.asyncio
    async def test_success_despite_side_effect_failure(self, store: InMemoryDocumentStore) -> None:
        result = await mutate_with_side_effect(
            store,
            MutationSpec.create("reviews", {"rating": 2}),
            lambda review: MutationSpec.update("profiles", "nobody", {"average_rating": 2.0}),
        )

        assert result.success
        assert result.data.get("rating") == 2

    @pytest.mark.asyncio
    async def test_primary_failure_envelope(self, store: InMemoryDocumentStore) -> None:
        result = await mutate_with_side_effect(store, MutationSpec.delete("reviews", "missing"))

        assert not result.success
        assert "delete on reviews/missing failed" in result.error


class TestTransitions:
    """Test suite for status transition tables."""

    @pytest.mark.parametrize(
        ("entity", "current", "target"),
        [
            ("application", "pending", "accepted"),
            ("application", "pending", "withdrawn"),
            ("payment", "pending", "completed"),
            ("payment", "completed", "refunded"),
            ("dispute", "open", "under_review"),
            ("dispute", "under_review", "resolved_in_favor_of_seeker"),
            ("dispute", "under_review", "cancelled"),
            ("job", "open", "assigned"),
            ("job", "assigned", "disputed"),
            ("job", "disputed", "completed"),
        ],
    )
    def test_allowed(self, entity: str, current: str, target: str) -> None:
        validate_transition(entity, current, target)

    @pytest.mark.parametrize(
        ("entity", "current", "target"),
        [
            ("application", "accepted", "pending"),
            ("payment", "refunded", "completed"),
            ("payment", "failed", "completed"),
            ("dispute", "open", "resolved_in_favor_of_provider"),
            ("job", "open", "completed"),
            ("job", "completed", "open"),
        ],
    )
    def test_disallowed(self, entity: str, current: str, target: str) -> None:
        with pytest.raises(ValidationFailure, match="Invalid"):
            validate_transition(entity, current, target)

    def test_unknown_values(self) -> None:
        with pytest.raises(ValidationFailure, match="Unknown entity"):
            validate_transition("invoice", "open", "paid")
        with pytest.raises(ValidationFailure, match="Unknown job status"):
            validate_transition("job", "open", "archived")
        with pytest.raises(ValidationFailure, match="unknown current status"):
            validate_transition("job", None, "assigned")

    def test_terminal_statuses(self) -> None:
        assert is_terminal("application", "rejected")
        assert is_terminal("dispute", "resolved_in_favor_of_seeker")
        assert not is_terminal("payment", "completed")
