"""Pydantic validation schemas for service requests.

Request models validate caller input before anything is written. Their
``to_fields()`` output is what the services hand to the document store.
"""

from __future__ import annotations

from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from sekoropo.errors import ValidationFailure
from sekoropo.storage.base import parse_timestamp

DisputePriority = Literal["low", "medium", "high", "urgent"]
NotificationType = Literal[
    "job_applied",
    "job_assigned",
    "payment_received",
    "new_message",
    "review_received",
    "dispute_raised",
    "admin_message",
]
PaymentDirection = Literal["sent", "received", "all"]
DisputeRole = Literal["complainant", "respondent", "all"]
ProfileRole = Literal["seeker", "provider", "admin"]


def validate_priority(value: str) -> str:
    """Check a dispute priority outside of a request model."""
    if value not in get_args(DisputePriority):
        raise ValidationFailure(f"Unknown dispute priority: {value}", priority=value)
    return value


class RequestModel(BaseModel):
    """Base for request schemas."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    def to_fields(self) -> dict[str, Any]:
        """Fields to write, leaving out values the caller did not set."""
        return self.model_dump(exclude_none=True)


def _check_timestamp(value: str | None) -> str | None:
    if value is not None and parse_timestamp(value) is None:
        raise ValueError(f"not an ISO-8601 timestamp: {value!r}")
    return value


class DateRange(BaseModel):
    """Inclusive ``created_at`` window for statistics."""

    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_timestamp(cls, v: str) -> str:
        return _check_timestamp(v)  # type: ignore[return-value]

    @model_validator(mode="after")
    def validate_order(self) -> DateRange:
        if parse_timestamp(self.start) > parse_timestamp(self.end):  # type: ignore[operator]
            raise ValueError("start must not be after end")
        return self


# ============================================================================
# Profiles
# ============================================================================


class CreateProfileRequest(RequestModel):
    """Profile of a registered user. The profile ID is the user ID."""

    user_id: str = Field(..., min_length=1)
    role: ProfileRole
    full_name: str = Field(..., min_length=1, max_length=200)
    phone_number: str = Field(..., min_length=1, max_length=30)
    location: str = Field(..., min_length=1, max_length=200)
    bio: str | None = Field(None, max_length=2_000)
    skills: list[str] = Field(default_factory=list)
    hourly_rate: float | None = Field(None, ge=0)


class UpdateProfileRequest(RequestModel):
    """Editable profile fields. Ratings and verification have their own operations."""

    full_name: str | None = Field(None, min_length=1, max_length=200)
    phone_number: str | None = Field(None, min_length=1, max_length=30)
    location: str | None = Field(None, min_length=1, max_length=200)
    bio: str | None = Field(None, max_length=2_000)
    avatar_file_id: str | None = None
    skills: list[str] | None = None
    hourly_rate: float | None = Field(None, ge=0)


# ============================================================================
# Jobs
# ============================================================================


class CreateJobRequest(RequestModel):
    """New job posting."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=10_000)
    employer_id: str = Field(..., min_length=1)
    category_id: str | None = None
    location: str | None = None
    budget: float = Field(..., ge=0)
    required_skills: list[str] = Field(default_factory=list)
    deadline: str | None = None

    @field_validator("deadline")
    @classmethod
    def validate_deadline(cls, v: str | None) -> str | None:
        return _check_timestamp(v)


class UpdateJobRequest(RequestModel):
    """Editable job fields. Status changes go through the job transitions."""

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=10_000)
    category_id: str | None = None
    location: str | None = None
    budget: float | None = Field(None, ge=0)
    required_skills: list[str] | None = None
    deadline: str | None = None

    @field_validator("deadline")
    @classmethod
    def validate_deadline(cls, v: str | None) -> str | None:
        return _check_timestamp(v)


class JobSearchRequest(RequestModel):
    """Job search filters, all AND-combined."""

    query: str | None = None
    category_id: str | None = None
    location: str | None = None
    min_budget: float | None = Field(None, ge=0)
    max_budget: float | None = Field(None, ge=0)
    status: str | None = None
    limit: int = Field(20, ge=0, le=100)
    offset: int = Field(0, ge=0)


# ============================================================================
# Applications
# ============================================================================


class CreateApplicationRequest(RequestModel):
    """Application by a provider for a job."""

    job_id: str = Field(..., min_length=1)
    applicant_id: str = Field(..., min_length=1)
    cover_letter: str = Field("", max_length=5_000)
    proposed_price: float | None = Field(None, ge=0)
    estimated_completion: str | None = None


class UpdateApplicationRequest(RequestModel):
    cover_letter: str | None = Field(None, max_length=5_000)
    proposed_price: float | None = Field(None, ge=0)
    estimated_completion: str | None = None


# ============================================================================
# Payments
# ============================================================================


class CreatePaymentRequest(RequestModel):
    """Payment held in escrow for a job."""

    job_id: str = Field(..., min_length=1)
    payer_id: str = Field(..., min_length=1)
    recipient_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    currency: str | None = Field(None, min_length=3, max_length=3)
    payment_method: str | None = None


class UpdatePaymentRequest(RequestModel):
    payment_method: str | None = None
    transaction_reference: str | None = None
    notes: str | None = Field(None, max_length=2_000)


# ============================================================================
# Reviews
# ============================================================================


class CreateReviewRequest(RequestModel):
    """Review of one job participant by another."""

    job_id: str = Field(..., min_length=1)
    reviewer_id: str = Field(..., min_length=1)
    reviewee_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field("", max_length=2_000)
    review_type: str = Field("client_to_provider", max_length=50)

    @model_validator(mode="after")
    def validate_participants(self) -> CreateReviewRequest:
        if self.reviewer_id == self.reviewee_id:
            raise ValueError("a user cannot review themselves")
        return self


class UpdateReviewRequest(RequestModel):
    rating: int | None = Field(None, ge=1, le=5)
    comment: str | None = Field(None, max_length=2_000)


# ============================================================================
# Disputes
# ============================================================================


class CreateDisputeRequest(RequestModel):
    """Dispute raised by one job participant against another."""

    job_id: str = Field(..., min_length=1)
    complainant_id: str = Field(..., min_length=1)
    respondent_id: str = Field(..., min_length=1)
    dispute_type: str = Field(..., min_length=1, max_length=50)
    description: str = Field("", max_length=10_000)
    evidence_urls: list[str] = Field(default_factory=list)
    amount_in_dispute: float | None = Field(None, ge=0)
    priority: DisputePriority = "medium"


class UpdateDisputeRequest(RequestModel):
    dispute_type: str | None = Field(None, min_length=1, max_length=50)
    description: str | None = Field(None, max_length=10_000)
    amount_in_dispute: float | None = Field(None, ge=0)


class DisputeFilters(RequestModel):
    """Dispute listing filters. ``user_id`` matches either party."""

    status: str | None = None
    priority: DisputePriority | None = None
    dispute_type: str | None = None
    user_id: str | None = None


# ============================================================================
# Messages and notifications
# ============================================================================


class CreateMessageRequest(RequestModel):
    sender_id: str = Field(..., min_length=1)
    recipient_id: str = Field(..., min_length=1)
    job_id: str | None = None
    content: str = Field(..., min_length=1, max_length=5_000)
    message_type: str = "text"


class UpdateMessageRequest(RequestModel):
    content: str | None = Field(None, min_length=1, max_length=5_000)


class CreateNotificationRequest(RequestModel):
    user_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field("", max_length=2_000)
    type: NotificationType
    related_id: str | None = None


# ============================================================================
# Admin
# ============================================================================


class JobFilters(RequestModel):
    status: str | None = None
    is_featured: bool | None = None
    is_priority_boosted: bool | None = None


class PlatformSettings(BaseModel):
    """Platform-wide settings, with the defaults used before any are stored."""

    model_config = ConfigDict(extra="ignore")

    maintenance_mode: bool = False
    user_registration_enabled: bool = True
    job_posting_enabled: bool = True
    payment_processing_enabled: bool = True
    commission_rate: float = Field(0.05, ge=0, le=1)
    min_job_price: float = Field(50, ge=0)
    max_job_price: float = Field(50_000, ge=0)
    platform_currency: str = "BWP"
    featured_job_price: float = Field(100, ge=0)
    job_boost_price: float = Field(50, ge=0)
    auto_job_expiry_days: int = Field(30, ge=1)
    max_applications_per_job: int = Field(50, ge=1)
    require_email_verification: bool = True
    require_phone_verification: bool = False
    allow_job_editing: bool = True
    allow_application_withdrawal: bool = True
    dispute_resolution_time_hours: int = Field(72, ge=1)
    escrow_release_time_hours: int = Field(24, ge=1)
    platform_name: str = "Sekoropo"
    support_email: str = "support@sekoropo.com"
    terms_url: str = "/terms"
    privacy_url: str = "/privacy"

    @model_validator(mode="after")
    def validate_price_range(self) -> PlatformSettings:
        if self.min_job_price > self.max_job_price:
            raise ValueError("min_job_price must not exceed max_job_price")
        return self
