"""Tests for the document stores and predicate evaluation."""

from __future__ import annotations

import pytest

from sekoropo.errors import DocumentNotFoundError, DuplicateDocumentError, StoreError, ValidationFailure
from sekoropo.storage import (
    DuckDBDocumentStore,
    InMemoryDocumentStore,
    Predicate,
    SortSpec,
    comparable,
    sort_documents,
)


@pytest.fixture(params=["memory", "duckdb"])
async def any_store(request: pytest.FixtureRequest):
    """Each test runs against both bundled stores."""
    if request.param == "memory":
        yield InMemoryDocumentStore()
        return
    store = DuckDBDocumentStore(database_path=":memory:")
    await store.initialize()
    yield store
    await store.close()


class TestDocumentStore:
    """Behaviour shared by every bundled store."""

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_timestamps(self, any_store) -> None:
        """Test that create generates an ID and stamps both timestamps."""
        document = await any_store.create("jobs", {"title": "Paint fence", "budget": 300})

        assert document.id
        assert document.collection == "jobs"
        assert document.fields == {"title": "Paint fence", "budget": 300}
        assert document.created_at is not None
        assert document.updated_at == document.created_at

    @pytest.mark.asyncio
    async def test_create_with_explicit_id(self, any_store) -> None:
        document = await any_store.create("jobs", {"title": "A"}, "job-1")

        fetched = await any_store.get("jobs", "job-1")
        assert document.id == "job-1"
        assert fetched.get("title") == "A"

    @pytest.mark.asyncio
    async def test_create_duplicate_id(self, any_store) -> None:
        """Test that reusing an ID in one collection is rejected."""
        await any_store.create("jobs", {"title": "A"}, "job-1")

        with pytest.raises(DuplicateDocumentError):
            await any_store.create("jobs", {"title": "B"}, "job-1")

        # Same ID in another collection is fine
        await any_store.create("payments", {"amount": 10}, "job-1")

    @pytest.mark.asyncio
    async def test_timestamps_are_metadata(self, any_store) -> None:
        """Test that created_at in the fields becomes document metadata."""
        document = await any_store.create(
            "disputes", {"status": "open", "created_at": "2024-01-01T00:00:00+00:00"}
        )

        assert "created_at" not in document.fields
        assert document.created_at == "2024-01-01T00:00:00+00:00"
        assert document.get("created_at") == "2024-01-01T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_get_missing(self, any_store) -> None:
        with pytest.raises(DocumentNotFoundError) as exc_info:
            await any_store.get("jobs", "nope")

        assert exc_info.value.document_id == "nope"
        assert isinstance(exc_info.value, StoreError)

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, any_store) -> None:
        """Test that update keeps fields it was not given."""
        created = await any_store.create(
            "jobs", {"title": "A", "status": "open", "created_at": "2024-01-01T00:00:00+00:00"}, "j1"
        )

        updated = await any_store.update("jobs", "j1", {"status": "assigned"})

        assert updated.fields == {"title": "A", "status": "assigned"}
        assert updated.created_at == created.created_at
        assert updated.updated_at != created.updated_at
        assert (await any_store.get("jobs", "j1")).get("status") == "assigned"

    @pytest.mark.asyncio
    async def test_update_missing(self, any_store) -> None:
        with pytest.raises(DocumentNotFoundError):
            await any_store.update("jobs", "nope", {"status": "open"})

    @pytest.mark.asyncio
    async def test_delete(self, any_store) -> None:
        await any_store.create("jobs", {"title": "A"}, "j1")

        await any_store.delete("jobs", "j1")

        with pytest.raises(DocumentNotFoundError):
            await any_store.get("jobs", "j1")
        with pytest.raises(DocumentNotFoundError):
            await any_store.delete("jobs", "j1")

    @pytest.mark.asyncio
    async def test_rejects_unsupported_values(self, any_store) -> None:
        """Test that nested objects and reserved names never reach storage."""
        with pytest.raises(ValidationFailure):
            await any_store.create("jobs", {"meta": {"nested": True}})
        with pytest.raises(ValidationFailure):
            await any_store.create("jobs", {"tags": ["a", 1]})
        with pytest.raises(ValidationFailure):
            await any_store.create("jobs", {"$id": "x"})

    @pytest.mark.asyncio
    async def test_list_filters_sorts_and_pages(self, any_store) -> None:
        """Test predicates, sorting and the limit/offset window together."""
        for index, budget in enumerate([100, 500, 250, 900]):
            await any_store.create(
                "jobs",
                {"budget": budget, "status": "open" if index != 2 else "cancelled"},
                f"j{index}",
            )

        result = await any_store.list(
            "jobs",
            [Predicate.equal("status", "open")],
            sort=SortSpec("budget", "desc"),
            limit=2,
            offset=0,
        )

        assert result.total == 3
        assert [d.id for d in result.documents] == ["j3", "j1"]

        second_page = await any_store.list(
            "jobs", [Predicate.equal("status", "open")], sort=SortSpec("budget", "desc"), limit=2, offset=2
        )
        assert [d.id for d in second_page.documents] == ["j0"]

    @pytest.mark.asyncio
    async def test_list_limit_zero_counts(self, any_store) -> None:
        """Test that limit=0 returns no documents but the full total."""
        await any_store.create("jobs", {"status": "open"})
        await any_store.create("jobs", {"status": "open"})

        result = await any_store.list("jobs", [Predicate.equal("status", "open")], limit=0)

        assert result.documents == []
        assert result.total == 2

    @pytest.mark.asyncio
    async def test_list_unknown_collection(self, any_store) -> None:
        result = await any_store.list("nothing")

        assert result.documents == []
        assert result.total == 0


class TestDuckDBDocumentStore:
    """DuckDB-specific behaviour."""

    @pytest.mark.asyncio
    async def test_initialization(self, duckdb_store: DuckDBDocumentStore) -> None:
        """Test that the documents table exists after initialize."""
        row = duckdb_store.conn.execute(
            "SELECT table_name FROM information_schema.tables WHERE table_name = 'documents'"
        ).fetchone()
        assert row is not None

    @pytest.mark.asyncio
    async def test_not_initialized(self) -> None:
        store = DuckDBDocumentStore()

        with pytest.raises(StoreError, match="not initialized"):
            await store.get("jobs", "j1")

    @pytest.mark.asyncio
    async def test_persists_to_file(self, tmp_path) -> None:
        """Test that documents survive closing and reopening the database."""
        path = tmp_path / "sekoropo.duckdb"
        store = DuckDBDocumentStore(database_path=path)
        await store.initialize()
        await store.create("reviews", {"rating": 4, "tags": ["fast", "tidy"]}, "r1")
        await store.close()

        reopened = DuckDBDocumentStore(database_path=path)
        await reopened.initialize()
        document = await reopened.get("reviews", "r1")
        await reopened.close()

        assert document.get("rating") == 4
        assert document.get("tags") == ["fast", "tidy"]

    @pytest.mark.asyncio
    async def test_backend_errors_become_store_errors(self, duckdb_store: DuckDBDocumentStore) -> None:
        """Test that a failing DuckDB connection surfaces as StoreError."""
        await duckdb_store.create("jobs", {"title": "A"}, "j1")
        duckdb_store.conn.close()

        with pytest.raises(StoreError, match="DuckDB list failed"):
            await duckdb_store.list("jobs")
        with pytest.raises(StoreError, match="DuckDB read failed"):
            await duckdb_store.get("jobs", "j1")


class TestPredicates:
    """Test suite for predicate evaluation."""

    def test_equal_and_not_equal(self, document_factory) -> None:
        document = document_factory("d1", status="open")

        assert Predicate.equal("status", "open").matches(document)
        assert not Predicate.not_equal("status", "open").matches(document)
        assert Predicate.not_equal("priority", "high").matches(document)

    def test_range_on_timestamps(self, document_factory) -> None:
        """Test that ISO timestamps compare as instants, not strings."""
        document = document_factory("d1", created_at="2024-03-01T12:00:00+02:00")

        # 10:00 UTC is the same instant
        assert Predicate.greater_equal("created_at", "2024-03-01T10:00:00Z").matches(document)
        assert Predicate.less_equal("created_at", "2024-03-01T10:00:00+00:00").matches(document)
        assert not Predicate.greater("created_at", "2024-03-01T10:00:00+00:00").matches(document)

    def test_range_never_matches_missing(self, document_factory) -> None:
        document = document_factory("d1")

        assert not Predicate.greater_equal("amount", 0).matches(document)
        assert not Predicate.less("amount", 10).matches(document)

    def test_range_on_numbers(self, document_factory) -> None:
        document = document_factory("d1", amount=150.5)

        assert Predicate.greater("amount", 100).matches(document)
        assert Predicate.less("amount", 151).matches(document)
        assert not Predicate.less_equal("amount", 150).matches(document)

    def test_is_in_contains_and_search(self, document_factory) -> None:
        document = document_factory(
            "d1", status="open", skills=["plumbing", "tiling"], content="Can you Fix the sink?"
        )

        assert Predicate.is_in("status", ["open", "assigned"]).matches(document)
        assert not Predicate.is_in("status", ["closed"]).matches(document)
        assert Predicate.contains("skills", "tiling").matches(document)
        assert not Predicate.contains("status", "open").matches(document)
        assert Predicate.search("content", "fix THE").matches(document)
        assert not Predicate.search("skills", "plumbing").matches(document)


class TestSorting:
    """Test suite for sort_documents."""

    def test_missing_sort_field_goes_last(self, document_factory) -> None:
        """Test that documents without the sort field are placed last in both directions."""
        documents = [
            document_factory("a"),
            document_factory("b", created_at="2024-01-02T00:00:00Z"),
            document_factory("c", created_at="2024-01-01T00:00:00Z"),
        ]

        assert [d.id for d in sort_documents(documents, "created_at", "desc")] == ["b", "c", "a"]
        assert [d.id for d in sort_documents(documents, "created_at", "asc")] == ["c", "b", "a"]

    def test_ties_broken_by_identity(self, document_factory) -> None:
        documents = [
            document_factory("z", rating=5),
            document_factory("m", rating=5),
            document_factory("a", rating=3),
        ]

        assert [d.id for d in sort_documents(documents, "rating", "desc")] == ["m", "z", "a"]
        assert [d.id for d in sort_documents(documents, "rating", "asc")] == ["a", "m", "z"]

    def test_identity_tiebreak_is_lexical(self, document_factory) -> None:
        """Test that IDs shaped like dates do not jump ahead of other IDs."""
        documents = [
            document_factory("20240101", rating=5),
            document_factory("1abc", rating=5),
        ]

        assert [d.id for d in sort_documents(documents, "rating", "desc")] == ["1abc", "20240101"]

    def test_comparable_keeps_mixed_types_apart(self) -> None:
        assert comparable(3) < comparable("2024-01-01T00:00:00Z") < comparable("plain")
        assert comparable(True) == (0, 1)
