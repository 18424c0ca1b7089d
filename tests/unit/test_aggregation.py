"""Tests for single-pass statistical aggregation."""

from __future__ import annotations

import pytest

from sekoropo.errors import ValidationFailure
from sekoropo.processing import (
    AggregationSpec,
    GroupedSumSpec,
    TimeDeltaSpec,
    aggregate,
    aggregate_documents,
    round_half_away,
    summarize_ratings,
)


class TestRounding:
    """Test suite for round_half_away."""

    @pytest.mark.parametrize(
        ("value", "decimals", "expected"),
        [
            (2.25, 1, 2.3),
            (2.35, 1, 2.4),
            (-2.25, 1, -2.3),
            (1.005, 2, 1.01),
            (4.0, 1, 4.0),
            (10, 2, 10.0),
        ],
    )
    def test_halves_round_away_from_zero(self, value: float, decimals: int, expected: float) -> None:
        assert round_half_away(value, decimals) == expected


class TestAggregate:
    """Test suite for aggregate."""

    def test_average_of_ratings(self, document_factory) -> None:
        """Test the canonical [3, 4, 5] -> 4.0 average."""
        reviews = [document_factory(f"r{i}", rating=r) for i, r in enumerate([3, 4, 5])]

        result = aggregate(reviews, AggregationSpec(average="rating"))

        assert result.count == 3
        assert result.average == 4.0

    def test_average_of_empty_input_is_zero(self) -> None:
        result = aggregate([], AggregationSpec(sum="amount", average="amount"))

        assert result.count == 0
        assert result.average == 0.0
        assert result.sum == 0.0

    def test_skips_non_numeric_values(self, document_factory) -> None:
        """Test that missing, string and boolean values are ignored."""
        documents = [
            document_factory("a", amount=100),
            document_factory("b", amount="100"),
            document_factory("c", amount=True),
            document_factory("d"),
            document_factory("e", amount=50.5),
        ]

        result = aggregate(
            documents, AggregationSpec(sum="amount", average="amount", average_decimals=2)
        )

        assert result.count == 5
        assert result.sum == 150.5
        assert result.average == 75.25

    def test_sum_is_order_independent(self, document_factory) -> None:
        amounts = [0.1, 0.2, 0.3, 1e-3, 1234.56]
        forward = [document_factory(str(i), amount=a) for i, a in enumerate(amounts)]

        first = aggregate(forward, AggregationSpec(sum="amount"))
        second = aggregate(list(reversed(forward)), AggregationSpec(sum="amount"))

        assert first.sum == second.sum

    def test_distribution_has_only_observed_keys(self, document_factory) -> None:
        """Test that bucket counts sum to the number of documents with the field."""
        documents = [
            document_factory("a", rating=5),
            document_factory("b", rating=5),
            document_factory("c", rating=2),
            document_factory("d"),
        ]

        result = aggregate(documents, AggregationSpec(distribution="rating"))

        assert result.distribution == {5: 2, 2: 1}
        assert sum(result.distribution.values()) == 3
        assert 1 not in result.distribution

    def test_multiple_distributions_in_one_pass(self, document_factory) -> None:
        documents = [
            document_factory("a", status="open", priority="high"),
            document_factory("b", status="open", priority="low"),
        ]

        result = aggregate(documents, AggregationSpec(distribution=("status", "priority")))

        assert result.distribution == {"open": 2}
        assert result.distributions["priority"] == {"high": 1, "low": 1}

    def test_time_delta_excludes_incomplete_documents(self, document_factory) -> None:
        """Test that a missing end timestamp is excluded, not counted as zero hours."""
        documents = [
            document_factory(
                "a",
                status="resolved",
                created_at="2024-01-01T00:00:00Z",
                resolved_at="2024-01-01T10:00:00Z",
            ),
            document_factory(
                "b",
                status="resolved",
                created_at="2024-01-01T00:00:00Z",
                resolved_at="2024-01-02T02:00:00Z",
            ),
            document_factory("c", status="resolved", created_at="2024-01-01T00:00:00Z"),
            document_factory(
                "d",
                status="cancelled",
                created_at="2024-01-01T00:00:00Z",
                resolved_at="2024-01-10T00:00:00Z",
            ),
        ]
        spec = AggregationSpec(
            time_delta=TimeDeltaSpec(
                "created_at", "resolved_at", lambda d: d.get("status") == "resolved"
            )
        )

        result = aggregate(documents, spec)

        assert result.count == 4
        assert result.time_delta.count == 2
        assert result.time_delta.total_hours == 36.0
        assert result.time_delta.average_hours == 18.0

    def test_time_delta_across_offsets(self, document_factory) -> None:
        documents = [
            document_factory(
                "a", created_at="2024-01-01T12:00:00+02:00", resolved_at="2024-01-01T11:30:00Z"
            ),
        ]

        result = aggregate(documents, AggregationSpec(time_delta=TimeDeltaSpec("created_at", "resolved_at")))

        assert result.time_delta.average_hours == 1.5

    def test_grouped_sum(self, document_factory) -> None:
        payments = [
            document_factory("a", status="pending", amount=100),
            document_factory("b", status="completed", amount=250.25),
            document_factory("c", status="completed", amount=49.75),
        ]

        result = aggregate(payments, AggregationSpec(grouped_sum=GroupedSumSpec("amount", "status")))

        assert result.grouped_sums == {"pending": 100.0, "completed": 300.0}

    def test_unrequested_outputs_stay_none(self, document_factory) -> None:
        result = aggregate([document_factory("a", rating=4)], AggregationSpec())

        assert result.count == 1
        assert result.sum is None
        assert result.average is None
        assert result.distribution is None
        assert result.time_delta is None

    def test_accepts_a_generator(self, document_factory) -> None:
        documents = (document_factory(str(i), rating=i) for i in range(1, 6))

        result = aggregate(documents, AggregationSpec(average="rating", distribution="rating"))

        assert result.count == 5
        assert result.average == 3.0

    def test_rejects_negative_decimals(self) -> None:
        with pytest.raises(ValidationFailure):
            aggregate([], AggregationSpec(average="rating", average_decimals=-1))


class TestSummaries:
    """Test suite for the rating summary and envelope helpers."""

    def test_summarize_ratings(self, document_factory) -> None:
        reviews = [
            document_factory(f"r{i}", rating=rating, created_at=f"2024-01-0{i + 1}T00:00:00Z")
            for i, rating in enumerate([5, 4, 4, 2, 5, 5])
        ]

        summary = summarize_ratings(reviews, recent=2)

        assert summary.total_reviews == 6
        assert summary.average_rating == 4.2
        assert summary.distribution == {5: 3, 4: 2, 2: 1}
        assert [d.id for d in summary.recent] == ["r5", "r4"]

    def test_summarize_no_reviews(self) -> None:
        summary = summarize_ratings([])

        assert summary.average_rating == 0.0
        assert summary.total_reviews == 0
        assert summary.distribution == {}
        assert summary.recent == []

    def test_aggregate_documents_envelope(self, document_factory) -> None:
        ok = aggregate_documents([document_factory("a", amount=5)], AggregationSpec(sum="amount"))
        failed = aggregate_documents([], AggregationSpec(average="x", average_decimals=-2))

        assert ok.success and ok.data.sum == 5.0
        assert not failed.success
        assert "average_decimals" in failed.error

    def test_aggregate_documents_envelope_catches_unexpected_errors(self, document_factory) -> None:
        """Test that an error raised by a caller-supplied predicate becomes a failure envelope."""

        def broken(document) -> bool:
            raise RuntimeError("predicate exploded")

        documents = [document_factory("a", created_at="2024-01-01T00:00:00Z", resolved_at="2024-01-01T01:00:00Z")]
        spec = AggregationSpec(time_delta=TimeDeltaSpec("created_at", "resolved_at", predicate=broken))

        result = aggregate_documents(documents, spec)

        assert not result.success
        assert result.error == "predicate exploded"
