"""Platform administration: settings, moderation and dashboard statistics."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Literal

from sekoropo.errors import ValidationFailure
from sekoropo.models import ApiResult, Document, utc_now_iso
from sekoropo.models.schemas import DateRange, JobFilters, PlatformSettings
from sekoropo.orchestration import DisputeStatus, JobStatus, MutationSpec, PaymentStatus
from sekoropo.processing.aggregation import AggregationSpec, aggregate, round_half_away
from sekoropo.services.base import BaseService, Page, date_range_predicates, validate_request
from sekoropo.services.jobs import JobService
from sekoropo.storage.base import Predicate

logger = logging.getLogger(__name__)

SETTINGS_DOCUMENT_ID = "platform_settings"
HEALTHY_MS = 1000
WARNING_MS = 3000

HealthStatus = Literal["healthy", "warning", "critical"]

_started = time.monotonic()


def health_status(response_ms: float) -> HealthStatus:
    """Classify a store round trip: under 1 s healthy, under 3 s warning."""
    if response_ms < HEALTHY_MS:
        return "healthy"
    if response_ms < WARNING_MS:
        return "warning"
    return "critical"


class AdminService(BaseService):
    """Administrative operations across collections."""

    name = "admin"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.job_service = JobService(self.store, self.config, self.engine, self.orchestrator)

    @property
    def collection(self) -> str:
        return self.collections.settings

    # ------------------------------------------------------------------
    # Platform settings
    # ------------------------------------------------------------------

    async def _stored_settings(self) -> Document | None:
        result = await self.store.list(self.collections.settings, limit=1)
        return result.documents[0] if result.documents else None

    async def platform_settings(self) -> ApiResult[dict[str, Any]]:
        """Stored settings, or the defaults when none have been saved.

        The ``id`` key is None for defaults.
        """

        async def call() -> dict[str, Any]:
            stored = await self._stored_settings()
            if stored is None:
                return {"id": None, **PlatformSettings().model_dump()}
            settings = validate_request(PlatformSettings, dict(stored.fields))
            return {"id": stored.id, **settings.model_dump()}

        return await self._guard("platform_settings", "Failed to fetch platform settings", call)

    async def update_platform_settings(self, updates: dict[str, Any]) -> ApiResult[Document]:
        """Validate ``updates`` against the current settings and save them."""

        async def call() -> Document:
            unknown = set(updates) - set(PlatformSettings.model_fields)
            if unknown:
                raise ValidationFailure(f"Unknown platform settings: {', '.join(sorted(unknown))}")

            stored = await self._stored_settings()
            current = validate_request(PlatformSettings, dict(stored.fields)) if stored else PlatformSettings()
            merged = validate_request(PlatformSettings, {**current.model_dump(), **updates})

            if stored is not None:
                return await self.orchestrator.execute(
                    MutationSpec.update(self.collections.settings, stored.id, updates)
                )
            return await self.orchestrator.execute(
                MutationSpec.create(self.collections.settings, merged.model_dump(), SETTINGS_DOCUMENT_ID)
            )

        return await self._guard("update_platform_settings", "Failed to update platform settings", call)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def users(
        self, is_active: bool | None = None, limit: int = 50, offset: int = 0
    ) -> ApiResult[Page]:
        predicates = [] if is_active is None else [Predicate.equal("is_active", is_active)]
        return await self._guard(
            "users",
            "Failed to fetch users",
            lambda: self._page(predicates, limit, offset, collection=self.collections.profiles),
        )

    async def update_user_status(
        self, user_id: str, is_active: bool, reason: str | None = None
    ) -> ApiResult[Document]:
        fields: dict[str, Any] = {"is_active": is_active}
        if reason:
            fields["status_reason"] = reason
        return await self._guard(
            "update_user_status",
            "Failed to update user status",
            lambda: self.orchestrator.execute(MutationSpec.update(self.collections.profiles, user_id, fields)),
        )

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def jobs(
        self, filters: JobFilters | dict[str, Any] | None = None, limit: int = 50, offset: int = 0
    ) -> ApiResult[Page]:
        async def call() -> Page:
            params = validate_request(JobFilters, filters or {})
            predicates = [Predicate.equal(name, value) for name, value in params.to_fields().items()]
            return await self._page(predicates, limit, offset, collection=self.collections.jobs)

        return await self._guard("jobs", "Failed to fetch jobs", call)

    async def update_job_status(
        self, job_id: str, status: JobStatus | str, reason: str | None = None
    ) -> ApiResult[Document]:
        """Move a job through its lifecycle, recording the admin's reason."""
        extra = {"admin_notes": reason} if reason else None
        return await self._guard(
            "update_job_status",
            "Failed to update job status",
            lambda: self.job_service.transition(job_id, status, extra),
        )

    async def feature_job(
        self, job_id: str, featured: bool, featured_until: str | None = None
    ) -> ApiResult[Document]:
        fields: dict[str, Any] = {"is_featured": featured}
        if featured_until:
            fields["featured_until"] = featured_until
        return await self._guard(
            "feature_job",
            "Failed to update job featured status",
            lambda: self.orchestrator.execute(MutationSpec.update(self.collections.jobs, job_id, fields)),
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def dashboard_stats(self, date_range: DateRange | dict[str, str] | None = None) -> ApiResult[dict[str, Any]]:
        """Headline platform numbers.

        Counts run concurrently. Revenue and average job value cover completed
        payments, restricted to ``date_range`` when given.
        """

        async def call() -> dict[str, Any]:
            window = validate_request(DateRange, date_range) if date_range is not None else None
            c = self.collections
            (
                total_users,
                active_users,
                total_jobs,
                open_jobs,
                completed_jobs,
                total_applications,
                pending_disputes,
                completed_payments,
            ) = await asyncio.gather(
                self._count([], c.profiles),
                self._count([Predicate.equal("is_active", True)], c.profiles),
                self._count([], c.jobs),
                self._count([Predicate.equal("status", JobStatus.OPEN.value)], c.jobs),
                self._count([Predicate.equal("status", JobStatus.COMPLETED.value)], c.jobs),
                self._count([], c.applications),
                self._count([Predicate.equal("status", DisputeStatus.OPEN.value)], c.disputes),
                self._all(
                    [Predicate.equal("status", PaymentStatus.COMPLETED.value), *date_range_predicates(window)],
                    collection=c.payments,
                ),
            )
            revenue = aggregate(
                completed_payments,
                AggregationSpec(
                    sum="amount", average="amount", average_decimals=self.config.rounding.currency_decimals
                ),
            )
            completion_rate = (
                round_half_away(completed_jobs * 100 / total_jobs, self.config.rounding.currency_decimals)
                if total_jobs
                else 0.0
            )
            return {
                "total_users": total_users,
                "active_users": active_users,
                "total_jobs": total_jobs,
                "active_jobs": open_jobs,
                "completed_jobs": completed_jobs,
                "total_applications": total_applications,
                "total_payments": revenue.count,
                "total_revenue": revenue.sum,
                "pending_disputes": pending_disputes,
                "job_completion_rate": completion_rate,
                "average_job_value": revenue.average,
            }

        return await self._guard("dashboard_stats", "Failed to fetch dashboard statistics", call)

    async def system_health(self) -> ApiResult[dict[str, Any]]:
        """Time one store round trip and classify it."""

        async def call() -> dict[str, Any]:
            start = time.perf_counter()
            await self.store.list(self.collections.settings, limit=1)
            response_ms = (time.perf_counter() - start) * 1000
            status = health_status(response_ms)
            if status != "healthy":
                logger.warning(f"Store round trip took {response_ms:.0f} ms ({status})")
            return {
                "status": status,
                "uptime_seconds": time.monotonic() - _started,
                "response_time_ms": round(response_ms, 2),
                "database_connected": True,
                "last_health_check": utc_now_iso(),
            }

        return await self._guard("system_health", "Failed to check system health", call)
