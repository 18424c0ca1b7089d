"""Job applications."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sekoropo.models import ApiResult, Document, utc_now_iso
from sekoropo.models.schemas import CreateApplicationRequest, UpdateApplicationRequest
from sekoropo.orchestration import ApplicationStatus, MutationSpec, validate_transition
from sekoropo.services.base import BaseService, Page, validate_request
from sekoropo.storage.base import Predicate

logger = logging.getLogger(__name__)

SORT_FIELD = "applied_at"


class ApplicationService(BaseService):
    """Applications by providers for jobs."""

    name = "applications"

    async def create(self, request: CreateApplicationRequest | dict[str, Any]) -> ApiResult[Document]:
        async def call() -> Document:
            application = validate_request(CreateApplicationRequest, request)
            fields = {
                **application.to_fields(),
                "status": ApplicationStatus.PENDING.value,
                "applied_at": utc_now_iso(),
            }
            return await self.orchestrator.execute(MutationSpec.create(self.collection, fields))

        return await self._guard("create", "Failed to create application", call)

    async def get(self, application_id: str) -> ApiResult[Document]:
        return await self._guard(
            "get", "Failed to fetch application", lambda: self.store.get(self.collection, application_id)
        )

    async def by_job(self, job_id: str, limit: int | None = None, offset: int = 0) -> ApiResult[Page]:
        return await self._guard(
            "by_job",
            "Failed to fetch applications",
            lambda: self._page([Predicate.equal("job_id", job_id)], limit, offset, SORT_FIELD),
        )

    async def by_user(self, user_id: str, limit: int | None = None, offset: int = 0) -> ApiResult[Page]:
        return await self._guard(
            "by_user",
            "Failed to fetch user applications",
            lambda: self._page([Predicate.equal("applicant_id", user_id)], limit, offset, SORT_FIELD),
        )

    async def _transition(self, application_id: str, target: str) -> Document:
        current = await self.store.get(self.collection, application_id)
        validate_transition("application", current.get("status"), target)
        fields = {"status": target, f"{target}_at": utc_now_iso()}
        return await self.orchestrator.execute(MutationSpec.update(self.collection, application_id, fields))

    async def update_status(self, application_id: str, status: ApplicationStatus | str) -> ApiResult[Document]:
        """Accept, reject or withdraw a pending application."""
        target = status.value if isinstance(status, ApplicationStatus) else status
        return await self._guard(
            "update_status",
            "Failed to update application status",
            lambda: self._transition(application_id, target),
        )

    async def withdraw(self, application_id: str) -> ApiResult[Document]:
        return await self._guard(
            "withdraw",
            "Failed to withdraw application",
            lambda: self._transition(application_id, ApplicationStatus.WITHDRAWN.value),
        )

    async def update(
        self, application_id: str, request: UpdateApplicationRequest | dict[str, Any]
    ) -> ApiResult[Document]:
        async def call() -> Document:
            updates = validate_request(UpdateApplicationRequest, request)
            return await self.orchestrator.execute(
                MutationSpec.update(self.collection, application_id, updates.to_fields())
            )

        return await self._guard("update", "Failed to update application", call)

    async def delete(self, application_id: str) -> ApiResult[None]:
        async def call() -> None:
            await self.orchestrator.execute(MutationSpec.delete(self.collection, application_id))

        return await self._guard("delete", "Failed to delete application", call)

    async def job_stats(self, job_id: str) -> ApiResult[dict[str, int]]:
        """Application counts for a job, by status."""

        async def call() -> dict[str, int]:
            by_job = Predicate.equal("job_id", job_id)
            total, pending, accepted, rejected = await asyncio.gather(
                self._count([by_job]),
                self._count([by_job, Predicate.equal("status", ApplicationStatus.PENDING.value)]),
                self._count([by_job, Predicate.equal("status", ApplicationStatus.ACCEPTED.value)]),
                self._count([by_job, Predicate.equal("status", ApplicationStatus.REJECTED.value)]),
            )
            return {"total": total, "pending": pending, "accepted": accepted, "rejected": rejected}

        return await self._guard("job_stats", "Failed to fetch application statistics", call)
