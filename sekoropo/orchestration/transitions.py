"""Allowed status transitions for marketplace entities.

Statuses are plain strings on the documents. Services validate a requested
change against these tables before writing; the mutation orchestrator itself
accepts any status.
"""

from __future__ import annotations

from enum import Enum

from sekoropo.errors import ValidationFailure


class ApplicationStatus(str, Enum):
    """Application lifecycle status."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class PaymentStatus(str, Enum):
    """Payment lifecycle status."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class EscrowStatus(str, Enum):
    """Escrow state of a payment."""

    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"


class DisputeStatus(str, Enum):
    """Dispute lifecycle status."""

    OPEN = "open"
    UNDER_REVIEW = "under_review"
    RESOLVED_FOR_SEEKER = "resolved_in_favor_of_seeker"
    RESOLVED_FOR_PROVIDER = "resolved_in_favor_of_provider"
    CANCELLED = "cancelled"


class JobStatus(str, Enum):
    """Job lifecycle status."""

    OPEN = "open"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


RESOLVED_DISPUTE_STATUSES = frozenset(
    {DisputeStatus.RESOLVED_FOR_SEEKER.value, DisputeStatus.RESOLVED_FOR_PROVIDER.value}
)

VALID_APPLICATION_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"accepted", "rejected", "withdrawn"}),
    "accepted": frozenset(),
    "rejected": frozenset(),
    "withdrawn": frozenset(),
}

VALID_PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"completed", "failed", "refunded"}),
    "completed": frozenset({"refunded"}),
    "failed": frozenset(),
    "refunded": frozenset(),
}

VALID_DISPUTE_TRANSITIONS: dict[str, frozenset[str]] = {
    "open": frozenset({"under_review", "cancelled"}),
    "under_review": frozenset(
        {"resolved_in_favor_of_seeker", "resolved_in_favor_of_provider", "cancelled"}
    ),
    "resolved_in_favor_of_seeker": frozenset(),
    "resolved_in_favor_of_provider": frozenset(),
    "cancelled": frozenset(),
}

VALID_JOB_TRANSITIONS: dict[str, frozenset[str]] = {
    "open": frozenset({"assigned", "cancelled"}),
    "assigned": frozenset({"completed", "disputed", "cancelled"}),
    "disputed": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
}

TRANSITIONS: dict[str, dict[str, frozenset[str]]] = {
    "application": VALID_APPLICATION_TRANSITIONS,
    "payment": VALID_PAYMENT_TRANSITIONS,
    "dispute": VALID_DISPUTE_TRANSITIONS,
    "job": VALID_JOB_TRANSITIONS,
}


def is_terminal(entity: str, status: str) -> bool:
    """True if no transition leaves ``status``."""
    return not TRANSITIONS[entity].get(status, frozenset())


def validate_transition(entity: str, current: str | None, target: str) -> None:
    """Check that ``current -> target`` is allowed for ``entity``.

    Raises:
        ValidationFailure: Unknown entity or status, or a disallowed transition
    """
    table = TRANSITIONS.get(entity)
    if table is None:
        raise ValidationFailure(f"Unknown entity type: {entity}")
    if target not in table:
        raise ValidationFailure(f"Unknown {entity} status: {target}", status=target)
    if current not in table:
        raise ValidationFailure(f"{entity} has unknown current status: {current}", status=current)
    if target not in table[current]:
        raise ValidationFailure(
            f"Invalid {entity} transition: {current} -> {target}",
            current=current,
            target=target,
        )
