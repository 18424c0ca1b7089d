"""Disputes between job participants and their resolution by admins."""

from __future__ import annotations

import logging
from typing import Any

from sekoropo.errors import ValidationFailure
from sekoropo.models import ApiResult, Document, utc_now_iso
from sekoropo.models.schemas import (
    CreateDisputeRequest,
    DateRange,
    DisputeFilters,
    DisputePriority,
    DisputeRole,
    UpdateDisputeRequest,
    validate_priority,
)
from sekoropo.orchestration import (
    RESOLVED_DISPUTE_STATUSES,
    DisputeStatus,
    MutationSpec,
    validate_transition,
)
from sekoropo.processing.aggregation import AggregationSpec, TimeDeltaSpec, aggregate
from sekoropo.query.aggregator import MergedResultSet
from sekoropo.services.base import BaseService, Page, date_range_predicates, validate_request
from sekoropo.storage.base import Predicate

logger = logging.getLogger(__name__)


def _is_resolved(dispute: Document) -> bool:
    return dispute.get("status") in RESOLVED_DISPUTE_STATUSES


def resolution_time(decimals: int) -> TimeDeltaSpec:
    """Hours from creation to resolution, over resolved disputes only."""
    return TimeDeltaSpec("created_at", "resolved_at", _is_resolved, decimals)


def _party_branches(user_id: str) -> list[list[Predicate]]:
    return [[Predicate.equal("complainant_id", user_id)], [Predicate.equal("respondent_id", user_id)]]


class DisputeService(BaseService):
    """Raising, triaging and resolving disputes."""

    name = "disputes"

    async def create(self, request: CreateDisputeRequest | dict[str, Any]) -> ApiResult[Document]:
        async def call() -> Document:
            dispute = validate_request(CreateDisputeRequest, request)
            fields = {**dispute.to_fields(), "status": DisputeStatus.OPEN.value}
            return await self.orchestrator.execute(MutationSpec.create(self.collection, fields))

        return await self._guard("create", "Failed to create dispute", call)

    async def get(self, dispute_id: str) -> ApiResult[Document]:
        return await self._guard(
            "get", "Failed to fetch dispute", lambda: self.store.get(self.collection, dispute_id)
        )

    async def list(
        self,
        filters: DisputeFilters | dict[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> ApiResult[Page | MergedResultSet]:
        """Disputes matching every filter. ``user_id`` matches either party."""

        async def call() -> Page | MergedResultSet:
            params = validate_request(DisputeFilters, filters or {})
            common: list[Predicate] = []
            if params.status:
                common.append(Predicate.equal("status", params.status))
            if params.priority:
                common.append(Predicate.equal("priority", params.priority))
            if params.dispute_type:
                common.append(Predicate.equal("dispute_type", params.dispute_type))

            if params.user_id:
                return await self._merge(_party_branches(params.user_id), common, limit, offset)
            return await self._page(common, limit, offset)

        return await self._guard("list", "Failed to fetch disputes", call)

    async def by_job(self, job_id: str) -> ApiResult[list[Document]]:
        return await self._guard(
            "by_job", "Failed to fetch job disputes", lambda: self._all([Predicate.equal("job_id", job_id)])
        )

    async def user_disputes(
        self,
        user_id: str,
        role: DisputeRole = "all",
        limit: int | None = None,
        offset: int = 0,
    ) -> ApiResult[Page | MergedResultSet]:
        """Disputes a user raised, is named in, or both."""

        async def call() -> Page | MergedResultSet:
            if role == "complainant":
                return await self._page([Predicate.equal("complainant_id", user_id)], limit, offset)
            if role == "respondent":
                return await self._page([Predicate.equal("respondent_id", user_id)], limit, offset)
            if role == "all":
                return await self._merge(_party_branches(user_id), limit=limit, offset=offset)
            raise ValidationFailure(f"Unknown dispute role: {role}")

        return await self._guard("user_disputes", "Failed to fetch user disputes", call)

    async def _transition(
        self,
        dispute_id: str,
        target: str,
        admin_id: str | None = None,
        resolution: str | None = None,
    ) -> Document:
        current = await self.store.get(self.collection, dispute_id)
        validate_transition("dispute", current.get("status"), target)

        now = utc_now_iso()
        fields: dict[str, Any] = {"status": target}
        if target == DisputeStatus.UNDER_REVIEW.value:
            fields["review_started_at"] = now
            if admin_id:
                fields["assigned_admin_id"] = admin_id
        elif target in RESOLVED_DISPUTE_STATUSES:
            fields["resolved_at"] = now
            if resolution:
                fields["resolution"] = resolution
        elif target == DisputeStatus.CANCELLED.value:
            fields["closed_at"] = now

        logger.info(f"Dispute {dispute_id}: {current.get('status')} -> {target}")
        return await self.orchestrator.execute(MutationSpec.update(self.collection, dispute_id, fields))

    async def update_status(
        self,
        dispute_id: str,
        status: DisputeStatus | str,
        admin_id: str | None = None,
        resolution: str | None = None,
    ) -> ApiResult[Document]:
        """Move a dispute through review to resolution or cancellation.

        Starting review records the admin and ``review_started_at``; resolving
        records ``resolution`` and ``resolved_at``; cancelling records
        ``closed_at``.
        """
        target = status.value if isinstance(status, DisputeStatus) else status
        return await self._guard(
            "update_status",
            "Failed to update dispute status",
            lambda: self._transition(dispute_id, target, admin_id, resolution),
        )

    async def assign_to_admin(self, dispute_id: str, admin_id: str) -> ApiResult[Document]:
        """Assign an admin, starting review if the dispute is still open."""

        async def call() -> Document:
            current = await self.store.get(self.collection, dispute_id)
            if current.get("status") == DisputeStatus.UNDER_REVIEW.value:
                return await self.orchestrator.execute(
                    MutationSpec.update(self.collection, dispute_id, {"assigned_admin_id": admin_id})
                )
            return await self._transition(dispute_id, DisputeStatus.UNDER_REVIEW.value, admin_id=admin_id)

        return await self._guard("assign_to_admin", "Failed to assign dispute to admin", call)

    async def update_priority(self, dispute_id: str, priority: DisputePriority | str) -> ApiResult[Document]:
        async def call() -> Document:
            return await self.orchestrator.execute(
                MutationSpec.update(self.collection, dispute_id, {"priority": validate_priority(priority)})
            )

        return await self._guard("update_priority", "Failed to update dispute priority", call)

    async def add_evidence(self, dispute_id: str, evidence_urls: list[str]) -> ApiResult[Document]:
        """Append evidence URLs to a dispute."""

        async def call() -> Document:
            current = await self.store.get(self.collection, dispute_id)
            existing = list(current.get("evidence_urls") or [])
            return await self.orchestrator.execute(
                MutationSpec.update(
                    self.collection, dispute_id, {"evidence_urls": [*existing, *evidence_urls]}
                )
            )

        return await self._guard("add_evidence", "Failed to add evidence to dispute", call)

    async def update(self, dispute_id: str, request: UpdateDisputeRequest | dict[str, Any]) -> ApiResult[Document]:
        async def call() -> Document:
            updates = validate_request(UpdateDisputeRequest, request)
            return await self.orchestrator.execute(
                MutationSpec.update(self.collection, dispute_id, updates.to_fields())
            )

        return await self._guard("update", "Failed to update dispute", call)

    async def delete(self, dispute_id: str) -> ApiResult[None]:
        async def call() -> None:
            await self.orchestrator.execute(MutationSpec.delete(self.collection, dispute_id))

        return await self._guard("delete", "Failed to delete dispute", call)

    async def stats(self, date_range: DateRange | dict[str, str] | None = None) -> ApiResult[dict[str, Any]]:
        """Dispute counts by status group, type and priority, plus mean resolution time.

        Resolution time covers disputes in a resolved status that carry
        ``resolved_at``; cancelled disputes are not resolved.
        """

        async def call() -> dict[str, Any]:
            window = validate_request(DateRange, date_range) if date_range is not None else None
            disputes = await self._all(date_range_predicates(window))
            result = aggregate(
                disputes,
                AggregationSpec(
                    distribution=("status", "dispute_type", "priority"),
                    time_delta=resolution_time(self.config.rounding.hours_decimals),
                ),
            )
            by_status = result.distributions["status"]
            return {
                "total_disputes": result.count,
                "open_disputes": by_status.get(DisputeStatus.OPEN.value, 0),
                "in_review_disputes": by_status.get(DisputeStatus.UNDER_REVIEW.value, 0),
                "resolved_disputes": sum(by_status.get(status, 0) for status in RESOLVED_DISPUTE_STATUSES),
                "closed_disputes": by_status.get(DisputeStatus.CANCELLED.value, 0),
                "disputes_by_type": result.distributions["dispute_type"],
                "disputes_by_priority": result.distributions["priority"],
                "average_resolution_hours": result.time_delta.average_hours if result.time_delta else 0.0,
            }

        return await self._guard("stats", "Failed to fetch dispute statistics", call)

    async def admin_workload(self, admin_id: str) -> ApiResult[dict[str, Any]]:
        """Disputes assigned to an admin and how fast they were resolved."""

        async def call() -> dict[str, Any]:
            disputes = await self._all([Predicate.equal("assigned_admin_id", admin_id)])
            result = aggregate(
                disputes,
                AggregationSpec(
                    distribution="status",
                    time_delta=resolution_time(self.config.rounding.hours_decimals),
                ),
            )
            by_status = result.distribution or {}
            return {
                "total_assigned": result.count,
                "in_review": by_status.get(DisputeStatus.UNDER_REVIEW.value, 0),
                "resolved": sum(by_status.get(status, 0) for status in RESOLVED_DISPUTE_STATUSES),
                "average_resolution_hours": result.time_delta.average_hours if result.time_delta else 0.0,
            }

        return await self._guard("admin_workload", "Failed to fetch admin workload", call)
