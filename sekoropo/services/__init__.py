"""Domain services returning ``ApiResult`` envelopes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sekoropo.orchestration.mutation import MutationOrchestrator
from sekoropo.query.fanout import FanOutQueryEngine
from sekoropo.services.admin import AdminService
from sekoropo.services.applications import ApplicationService
from sekoropo.services.base import BaseService, Page, validate_request
from sekoropo.services.disputes import DisputeService
from sekoropo.services.jobs import JobService
from sekoropo.services.messages import ConversationList, ConversationSummary, MessageService
from sekoropo.services.notifications import NotificationService
from sekoropo.services.payments import PaymentService
from sekoropo.services.profiles import ProfileService
from sekoropo.services.reviews import ReviewService

if TYPE_CHECKING:
    from sekoropo.config import SekoropoConfig
    from sekoropo.storage.base import DocumentStore


@dataclass
class Services:
    """Every domain service, wired to one store and one config."""

    jobs: JobService
    applications: ApplicationService
    payments: PaymentService
    reviews: ReviewService
    disputes: DisputeService
    messages: MessageService
    notifications: NotificationService
    profiles: ProfileService
    admin: AdminService

    @classmethod
    def create(cls, store: DocumentStore, config: SekoropoConfig) -> Services:
        engine = FanOutQueryEngine(store)
        orchestrator = MutationOrchestrator(store)
        shared = (store, config, engine, orchestrator)
        return cls(
            jobs=JobService(*shared),
            applications=ApplicationService(*shared),
            payments=PaymentService(*shared),
            reviews=ReviewService(*shared),
            disputes=DisputeService(*shared),
            messages=MessageService(*shared),
            notifications=NotificationService(*shared),
            profiles=ProfileService(*shared),
            admin=AdminService(*shared),
        )


__all__ = [
    "AdminService",
    "ApplicationService",
    "BaseService",
    "ConversationList",
    "ConversationSummary",
    "DisputeService",
    "JobService",
    "MessageService",
    "NotificationService",
    "Page",
    "PaymentService",
    "ProfileService",
    "ReviewService",
    "Services",
    "validate_request",
]
