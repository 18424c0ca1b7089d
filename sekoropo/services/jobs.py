"""Job postings."""

from __future__ import annotations

import logging
from typing import Any

from sekoropo.models import ApiResult, Document, utc_now_iso
from sekoropo.models.schemas import CreateJobRequest, JobSearchRequest, UpdateJobRequest
from sekoropo.orchestration import JobStatus, MutationSpec, validate_transition
from sekoropo.services.base import BaseService, Page, validate_request
from sekoropo.storage.base import Predicate

logger = logging.getLogger(__name__)

SORT_FIELD = "posted_at"


class JobService(BaseService):
    """CRUD, search and lifecycle of job postings."""

    name = "jobs"

    async def create(self, request: CreateJobRequest | dict[str, Any]) -> ApiResult[Document]:
        async def call() -> Document:
            job = validate_request(CreateJobRequest, request)
            fields = {
                **job.to_fields(),
                "status": JobStatus.OPEN.value,
                "posted_at": utc_now_iso(),
                "is_featured": False,
            }
            return await self.orchestrator.execute(MutationSpec.create(self.collection, fields))

        return await self._guard("create", "Failed to create job", call)

    async def get(self, job_id: str) -> ApiResult[Document]:
        return await self._guard("get", "Failed to get job", lambda: self.store.get(self.collection, job_id))

    async def search(self, request: JobSearchRequest | dict[str, Any] | None = None) -> ApiResult[Page]:
        """Search jobs. Every given filter narrows the result."""

        async def call() -> Page:
            params = validate_request(JobSearchRequest, request or {})
            predicates: list[Predicate] = []
            if params.query:
                predicates.append(Predicate.search("title", params.query))
            if params.category_id:
                predicates.append(Predicate.equal("category_id", params.category_id))
            if params.location:
                predicates.append(Predicate.equal("location", params.location))
            if params.min_budget is not None:
                predicates.append(Predicate.greater_equal("budget", params.min_budget))
            if params.max_budget is not None:
                predicates.append(Predicate.less_equal("budget", params.max_budget))
            if params.status:
                predicates.append(Predicate.equal("status", params.status))
            return await self._page(predicates, params.limit, params.offset, SORT_FIELD)

        return await self._guard("search", "Failed to search jobs", call)

    async def update(self, job_id: str, request: UpdateJobRequest | dict[str, Any]) -> ApiResult[Document]:
        async def call() -> Document:
            updates = validate_request(UpdateJobRequest, request)
            return await self.orchestrator.execute(
                MutationSpec.update(self.collection, job_id, updates.to_fields())
            )

        return await self._guard("update", "Failed to update job", call)

    async def delete(self, job_id: str) -> ApiResult[None]:
        async def call() -> None:
            await self.orchestrator.execute(MutationSpec.delete(self.collection, job_id))

        return await self._guard("delete", "Failed to delete job", call)

    async def by_employer(
        self, employer_id: str, limit: int | None = None, offset: int = 0
    ) -> ApiResult[Page]:
        return await self._guard(
            "by_employer",
            "Failed to get employer jobs",
            lambda: self._page([Predicate.equal("employer_id", employer_id)], limit, offset, SORT_FIELD),
        )

    async def by_status(self, status: str, limit: int | None = None, offset: int = 0) -> ApiResult[Page]:
        return await self._guard(
            "by_status",
            "Failed to get jobs by status",
            lambda: self._page([Predicate.equal("status", status)], limit, offset, SORT_FIELD),
        )

    async def transition(
        self,
        job_id: str,
        target: JobStatus | str,
        extra_fields: dict[str, Any] | None = None,
    ) -> Document:
        """Move a job to ``target`` after checking the job transition table.

        Raises:
            ValidationFailure: The transition is not allowed
            MutationFailure: The job could not be read or written
        """
        target = target.value if isinstance(target, JobStatus) else target
        current = await self.store.get(self.collection, job_id)
        validate_transition("job", current.get("status"), target)
        fields = {"status": target, f"{target}_at": utc_now_iso(), **(extra_fields or {})}
        logger.info(f"Job {job_id}: {current.get('status')} -> {target}")
        return await self.orchestrator.execute(MutationSpec.update(self.collection, job_id, fields))

    async def assign(self, job_id: str, provider_id: str) -> ApiResult[Document]:
        return await self._guard(
            "assign",
            "Failed to assign job",
            lambda: self.transition(job_id, JobStatus.ASSIGNED, {"assigned_provider_id": provider_id}),
        )

    async def complete(self, job_id: str) -> ApiResult[Document]:
        return await self._guard(
            "complete", "Failed to complete job", lambda: self.transition(job_id, JobStatus.COMPLETED)
        )

    async def cancel(self, job_id: str, reason: str | None = None) -> ApiResult[Document]:
        extra = {"cancellation_reason": reason} if reason else None
        return await self._guard(
            "cancel", "Failed to cancel job", lambda: self.transition(job_id, JobStatus.CANCELLED, extra)
        )

    async def toggle_featured(self, job_id: str, featured: bool) -> ApiResult[Document]:
        return await self._guard(
            "toggle_featured",
            "Failed to toggle job feature",
            lambda: self.orchestrator.execute(
                MutationSpec.update(self.collection, job_id, {"is_featured": featured})
            ),
        )

    async def featured(self, limit: int | None = None) -> ApiResult[list[Document]]:
        """Open featured jobs, newest first."""
        limit = self.config.query.featured_limit if limit is None else limit

        async def call() -> list[Document]:
            page = await self._page(
                [Predicate.equal("is_featured", True), Predicate.equal("status", JobStatus.OPEN.value)],
                limit,
                0,
                SORT_FIELD,
            )
            return page.documents

        return await self._guard("featured", "Failed to get featured jobs", call)

    async def recent(self, limit: int | None = None) -> ApiResult[list[Document]]:
        """Open jobs, newest first."""

        async def call() -> list[Document]:
            page = await self._page(
                [Predicate.equal("status", JobStatus.OPEN.value)], limit, 0, SORT_FIELD
            )
            return page.documents

        return await self._guard("recent", "Failed to get recent jobs", call)
