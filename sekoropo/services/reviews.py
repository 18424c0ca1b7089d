"""Reviews and the reviewee rating they feed.

Each create, update and delete is a primary write on the review followed by a
derived write of ``average_rating`` and ``total_reviews`` onto the reviewee's
profile. The derived write is best effort: if it fails the review change
stands and the failure is only logged.
"""

from __future__ import annotations

import logging
from typing import Any

from sekoropo.errors import ValidationFailure
from sekoropo.models import ApiResult, Document
from sekoropo.models.schemas import CreateReviewRequest, DateRange, UpdateReviewRequest
from sekoropo.orchestration import MutationSpec
from sekoropo.processing.aggregation import AggregationSpec, RatingSummary, aggregate, summarize_ratings
from sekoropo.services.base import BaseService, Page, date_range_predicates, validate_request
from sekoropo.storage.base import Predicate

logger = logging.getLogger(__name__)


class ReviewService(BaseService):
    """Reviews between job participants."""

    name = "reviews"

    async def _summary(self, reviewee_id: str) -> RatingSummary:
        reviews = await self._all([Predicate.equal("reviewee_id", reviewee_id)])
        return summarize_ratings(
            reviews,
            recent=self.config.query.recent_reviews,
            decimals=self.config.rounding.rating_decimals,
        )

    async def recompute_rating(self, review: Document) -> MutationSpec | None:
        """Derive the reviewee profile update from the current set of reviews."""
        reviewee_id = review.get("reviewee_id")
        if not reviewee_id:
            return None
        summary = await self._summary(reviewee_id)
        logger.debug(
            f"Reviewee {reviewee_id}: average {summary.average_rating} "
            f"over {summary.total_reviews} reviews"
        )
        return MutationSpec.update(
            self.collections.profiles,
            reviewee_id,
            {"average_rating": summary.average_rating, "total_reviews": summary.total_reviews},
        )

    async def _existing_review(self, job_id: str, reviewer_id: str, reviewee_id: str) -> bool:
        count = await self._count(
            [
                Predicate.equal("job_id", job_id),
                Predicate.equal("reviewer_id", reviewer_id),
                Predicate.equal("reviewee_id", reviewee_id),
            ]
        )
        return count > 0

    async def create(self, request: CreateReviewRequest | dict[str, Any]) -> ApiResult[Document]:
        """Create a review. One review per job, reviewer and reviewee."""

        async def call() -> Document:
            review = validate_request(CreateReviewRequest, request)
            if await self._existing_review(review.job_id, review.reviewer_id, review.reviewee_id):
                raise ValidationFailure(
                    f"{review.reviewer_id} already reviewed {review.reviewee_id} for job {review.job_id}"
                )
            return await self.orchestrator.execute(
                MutationSpec.create(self.collection, review.to_fields()),
                self.recompute_rating,
            )

        return await self._guard("create", "Failed to create review", call)

    async def get(self, review_id: str) -> ApiResult[Document]:
        return await self._guard(
            "get", "Failed to fetch review", lambda: self.store.get(self.collection, review_id)
        )

    async def for_user(self, user_id: str, limit: int | None = None, offset: int = 0) -> ApiResult[Page]:
        """Reviews received by a user."""
        return await self._guard(
            "for_user",
            "Failed to fetch user reviews",
            lambda: self._page([Predicate.equal("reviewee_id", user_id)], limit, offset),
        )

    async def by_user(self, user_id: str, limit: int | None = None, offset: int = 0) -> ApiResult[Page]:
        """Reviews written by a user."""
        return await self._guard(
            "by_user",
            "Failed to fetch reviews by user",
            lambda: self._page([Predicate.equal("reviewer_id", user_id)], limit, offset),
        )

    async def for_job(self, job_id: str, limit: int | None = None, offset: int = 0) -> ApiResult[Page]:
        return await self._guard(
            "for_job",
            "Failed to fetch job reviews",
            lambda: self._page([Predicate.equal("job_id", job_id)], limit, offset),
        )

    async def update(self, review_id: str, request: UpdateReviewRequest | dict[str, Any]) -> ApiResult[Document]:
        """Edit a review. The reviewee rating is recomputed only when the rating changed."""

        async def call() -> Document:
            updates = validate_request(UpdateReviewRequest, request)
            current = await self.store.get(self.collection, review_id)
            rating_changed = updates.rating is not None and updates.rating != current.get("rating")

            async def derive(review: Document) -> MutationSpec | None:
                return await self.recompute_rating(review) if rating_changed else None

            return await self.orchestrator.execute(
                MutationSpec.update(self.collection, review_id, updates.to_fields()),
                derive,
            )

        return await self._guard("update", "Failed to update review", call)

    async def delete(self, review_id: str) -> ApiResult[None]:
        async def call() -> None:
            await self.orchestrator.execute(
                MutationSpec.delete(self.collection, review_id),
                self.recompute_rating,
            )

        return await self._guard("delete", "Failed to delete review", call)

    async def rating_stats(self, user_id: str) -> ApiResult[RatingSummary]:
        """Average rating, count, distribution and most recent reviews of a reviewee."""
        return await self._guard(
            "rating_stats", "Failed to fetch user rating statistics", lambda: self._summary(user_id)
        )

    async def can_review(self, reviewer_id: str, job_id: str, reviewee_id: str) -> ApiResult[bool]:
        """True unless the reviewer already reviewed this reviewee for this job."""

        async def call() -> bool:
            if reviewer_id == reviewee_id:
                return False
            return not await self._existing_review(job_id, reviewer_id, reviewee_id)

        return await self._guard("can_review", "Failed to check review eligibility", call)

    async def platform_stats(self, date_range: DateRange | dict[str, str] | None = None) -> ApiResult[dict[str, Any]]:
        """Review count, average rating, rating distribution and count by review type."""

        async def call() -> dict[str, Any]:
            window = validate_request(DateRange, date_range) if date_range is not None else None
            reviews = await self._all(date_range_predicates(window))
            result = aggregate(
                reviews,
                AggregationSpec(
                    average="rating",
                    distribution=("rating", "review_type"),
                    average_decimals=self.config.rounding.rating_decimals,
                ),
            )
            return {
                "total_reviews": result.count,
                "average_rating": result.average,
                "rating_distribution": result.distributions["rating"],
                "reviews_by_type": result.distributions["review_type"],
            }

        return await self._guard("platform_stats", "Failed to fetch platform review statistics", call)
