"""Mutation orchestration and status transition rules."""

from sekoropo.orchestration.mutation import (
    MutationOperation,
    MutationOrchestrator,
    MutationSpec,
    SideEffectDeriver,
    mutate_with_side_effect,
)
from sekoropo.orchestration.transitions import (
    RESOLVED_DISPUTE_STATUSES,
    TRANSITIONS,
    ApplicationStatus,
    DisputeStatus,
    EscrowStatus,
    JobStatus,
    PaymentStatus,
    is_terminal,
    validate_transition,
)

__all__ = [
    "ApplicationStatus",
    "DisputeStatus",
    "EscrowStatus",
    "is_terminal",
    "JobStatus",
    "mutate_with_side_effect",
    "MutationOperation",
    "MutationOrchestrator",
    "MutationSpec",
    "PaymentStatus",
    "RESOLVED_DISPUTE_STATUSES",
    "SideEffectDeriver",
    "TRANSITIONS",
    "validate_transition",
]
