"""User profiles.

A profile is keyed by its user ID, which is also what reviews, payments and
admin moderation refer to. ``average_rating`` and ``total_reviews`` are
normally derived from reviews by :class:`~sekoropo.services.reviews.ReviewService`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from sekoropo.errors import DocumentNotFoundError, ValidationFailure
from sekoropo.models import ApiResult, Document, utc_now_iso
from sekoropo.models.schemas import CreateProfileRequest, ProfileRole, UpdateProfileRequest
from sekoropo.orchestration import MutationSpec
from sekoropo.services.base import BaseService, Page, validate_request
from sekoropo.storage.base import Predicate

if TYPE_CHECKING:
    from sekoropo.query.aggregator import MergedResultSet

logger = logging.getLogger(__name__)

RATING_FIELD = "average_rating"
TOP_PROVIDER_MIN_RATING = 4.0


class ProfileService(BaseService):
    """Profiles of seekers, providers and admins."""

    name = "profiles"

    async def create(self, request: CreateProfileRequest | dict[str, Any]) -> ApiResult[Document]:
        """Create a profile with zeroed ratings and unverified contact details."""

        async def call() -> Document:
            profile = validate_request(CreateProfileRequest, request)
            fields = {
                **profile.to_fields(),
                "is_active": True,
                "is_phone_verified": False,
                "is_id_verified": False,
                RATING_FIELD: 0.0,
                "total_reviews": 0,
                "jobs_completed": 0,
            }
            return await self.orchestrator.execute(
                MutationSpec.create(self.collection, fields, profile.user_id)
            )

        return await self._guard("create", "Failed to create profile", call)

    async def get(self, profile_id: str) -> ApiResult[Document]:
        return await self._guard(
            "get", "Failed to get profile", lambda: self.store.get(self.collection, profile_id)
        )

    async def by_user_id(self, user_id: str) -> ApiResult[Document]:
        """Look a profile up by its ``user_id`` field."""

        async def call() -> Document:
            page = await self._page([Predicate.equal("user_id", user_id)], limit=1)
            if not page.documents:
                raise DocumentNotFoundError(self.collection, user_id)
            return page.documents[0]

        return await self._guard("by_user_id", "Profile not found", call)

    async def update(self, profile_id: str, request: UpdateProfileRequest | dict[str, Any]) -> ApiResult[Document]:
        async def call() -> Document:
            updates = validate_request(UpdateProfileRequest, request)
            return await self.orchestrator.execute(
                MutationSpec.update(self.collection, profile_id, updates.to_fields())
            )

        return await self._guard("update", "Failed to update profile", call)

    async def by_role(self, role: ProfileRole, limit: int | None = None, offset: int = 0) -> ApiResult[Page]:
        return await self._guard(
            "by_role",
            "Failed to get profiles",
            lambda: self._page([Predicate.equal("role", role)], limit, offset),
        )

    async def search_providers(
        self,
        skills: list[str] | None = None,
        location: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> ApiResult[Page | MergedResultSet]:
        """Providers offering any of ``skills``, best rated first.

        Each skill is one branch of a fan-out OR. ``location`` narrows every
        branch.
        """

        async def call() -> Page | MergedResultSet:
            common = [Predicate.equal("role", "provider")]
            if location:
                common.append(Predicate.equal("location", location))
            wanted = list(dict.fromkeys(skill for skill in skills or [] if skill))

            if len(wanted) > 1:
                branches = [[Predicate.contains("skills", skill)] for skill in wanted]
                return await self._merge(branches, common, limit, offset, sort_field=RATING_FIELD)
            if wanted:
                common.append(Predicate.contains("skills", wanted[0]))
            return await self._page(common, limit, offset, sort_field=RATING_FIELD)

        return await self._guard("search_providers", "Failed to search providers", call)

    async def update_rating(self, profile_id: str, average_rating: float, total_reviews: int) -> ApiResult[Document]:
        """Overwrite the rating summary, for example when backfilling."""

        async def call() -> Document:
            if not 0 <= average_rating <= 5 or total_reviews < 0:
                raise ValidationFailure(
                    "average_rating must be within 0-5 and total_reviews non-negative",
                    average_rating=average_rating,
                    total_reviews=total_reviews,
                )
            return await self.orchestrator.execute(
                MutationSpec.update(
                    self.collection,
                    profile_id,
                    {RATING_FIELD: average_rating, "total_reviews": total_reviews},
                )
            )

        return await self._guard("update_rating", "Failed to update rating", call)

    async def increment_jobs_completed(self, profile_id: str) -> ApiResult[Document]:
        async def call() -> Document:
            current = await self.store.get(self.collection, profile_id)
            completed = int(current.get("jobs_completed") or 0) + 1
            return await self.orchestrator.execute(
                MutationSpec.update(self.collection, profile_id, {"jobs_completed": completed})
            )

        return await self._guard("increment_jobs_completed", "Failed to update jobs completed", call)

    async def verify_phone(self, profile_id: str) -> ApiResult[Document]:
        return await self._guard(
            "verify_phone",
            "Failed to verify phone",
            lambda: self._verify(profile_id, "is_phone_verified", "phone_verified_at"),
        )

    async def verify_id(self, profile_id: str) -> ApiResult[Document]:
        return await self._guard(
            "verify_id",
            "Failed to verify ID",
            lambda: self._verify(profile_id, "is_id_verified", "id_verified_at"),
        )

    async def _verify(self, profile_id: str, flag: str, stamp: str) -> Document:
        logger.info(f"Profile {profile_id}: {flag}")
        return await self.orchestrator.execute(
            MutationSpec.update(self.collection, profile_id, {flag: True, stamp: utc_now_iso()})
        )

    async def top_providers(self, limit: int | None = None) -> ApiResult[list[Document]]:
        """Providers rated above 4.0, best first."""
        limit = self.config.query.top_providers_limit if limit is None else limit

        async def call() -> list[Document]:
            page = await self._page(
                [
                    Predicate.equal("role", "provider"),
                    Predicate.greater(RATING_FIELD, TOP_PROVIDER_MIN_RATING),
                ],
                limit,
                0,
                sort_field=RATING_FIELD,
            )
            return page.documents

        return await self._guard("top_providers", "Failed to get top providers", call)

    async def stats(self, profile_id: str) -> ApiResult[dict[str, Any]]:
        """Profile plus its activity counts, fetched concurrently."""

        async def call() -> dict[str, Any]:
            c = self.collections
            profile, reviews_given, reviews_received, jobs_posted, applications = await asyncio.gather(
                self.store.get(self.collection, profile_id),
                self._count([Predicate.equal("reviewer_id", profile_id)], c.reviews),
                self._count([Predicate.equal("reviewee_id", profile_id)], c.reviews),
                self._count([Predicate.equal("employer_id", profile_id)], c.jobs),
                self._count([Predicate.equal("applicant_id", profile_id)], c.applications),
            )
            return {
                "profile": profile,
                "reviews_given": reviews_given,
                "reviews_received": reviews_received,
                "jobs_posted": jobs_posted,
                "applications": applications,
                "jobs_completed": int(profile.get("jobs_completed") or 0),
            }

        return await self._guard("stats", "Failed to get profile stats", call)
