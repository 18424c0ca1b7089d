"""Escrow payments between job participants."""

from __future__ import annotations

import logging
from typing import Any

from sekoropo.errors import ValidationFailure
from sekoropo.models import ApiResult, Document, utc_now_iso
from sekoropo.models.schemas import (
    CreatePaymentRequest,
    DateRange,
    PaymentDirection,
    UpdatePaymentRequest,
)
from sekoropo.orchestration import EscrowStatus, MutationSpec, PaymentStatus, validate_transition
from sekoropo.processing.aggregation import AggregationSpec, GroupedSumSpec, aggregate
from sekoropo.query.aggregator import MergedResultSet
from sekoropo.services.base import BaseService, Page, date_range_predicates, validate_request
from sekoropo.storage.base import Predicate

logger = logging.getLogger(__name__)


class PaymentService(BaseService):
    """Payments held in escrow until released or refunded."""

    name = "payments"

    def mirror_on_job(self, payment: Document) -> MutationSpec | None:
        """Derived write copying a payment's status onto its job."""
        job_id = payment.get("job_id")
        if not job_id:
            return None
        return MutationSpec.update(
            self.collections.jobs,
            job_id,
            {
                "payment_status": payment.get("status"),
                "escrow_status": payment.get("escrow_status"),
                "payment_id": payment.id,
            },
        )

    async def create(self, request: CreatePaymentRequest | dict[str, Any]) -> ApiResult[Document]:
        async def call() -> Document:
            payment = validate_request(CreatePaymentRequest, request)
            fields = {
                **payment.to_fields(),
                "currency": payment.currency or self.config.platform_currency,
                "status": PaymentStatus.PENDING.value,
                "escrow_status": EscrowStatus.HELD.value,
            }
            return await self.orchestrator.execute(MutationSpec.create(self.collection, fields))

        return await self._guard("create", "Failed to create payment", call)

    async def get(self, payment_id: str) -> ApiResult[Document]:
        return await self._guard(
            "get", "Failed to fetch payment", lambda: self.store.get(self.collection, payment_id)
        )

    async def by_job(self, job_id: str) -> ApiResult[list[Document]]:
        return await self._guard(
            "by_job", "Failed to fetch job payments", lambda: self._all([Predicate.equal("job_id", job_id)])
        )

    async def user_payments(
        self,
        user_id: str,
        direction: PaymentDirection = "all",
        limit: int | None = None,
        offset: int = 0,
    ) -> ApiResult[Page | MergedResultSet]:
        """Payments a user sent, received, or both.

        ``all`` is the OR of payer and recipient, answered by the fan-out merger.
        """

        async def call() -> Page | MergedResultSet:
            if direction == "sent":
                return await self._page([Predicate.equal("payer_id", user_id)], limit, offset)
            if direction == "received":
                return await self._page([Predicate.equal("recipient_id", user_id)], limit, offset)
            if direction == "all":
                return await self._merge(
                    [[Predicate.equal("payer_id", user_id)], [Predicate.equal("recipient_id", user_id)]],
                    limit=limit,
                    offset=offset,
                )
            raise ValidationFailure(f"Unknown payment direction: {direction}")

        return await self._guard("user_payments", "Failed to fetch user payments", call)

    async def _transition(
        self,
        payment_id: str,
        target: str,
        extra_fields: dict[str, Any] | None = None,
        require_escrow: EscrowStatus | None = None,
    ) -> Document:
        current = await self.store.get(self.collection, payment_id)
        validate_transition("payment", current.get("status"), target)
        if require_escrow is not None and current.get("escrow_status") != require_escrow.value:
            raise ValidationFailure(
                f"Payment {payment_id} escrow is {current.get('escrow_status')}, "
                f"expected {require_escrow.value}"
            )
        fields = {"status": target, f"{target}_at": utc_now_iso(), **(extra_fields or {})}
        logger.info(f"Payment {payment_id}: {current.get('status')} -> {target}")
        return await self.orchestrator.execute(
            MutationSpec.update(self.collection, payment_id, fields),
            self.mirror_on_job,
        )

    async def update_status(self, payment_id: str, status: PaymentStatus | str) -> ApiResult[Document]:
        target = status.value if isinstance(status, PaymentStatus) else status
        return await self._guard(
            "update_status",
            "Failed to update payment status",
            lambda: self._transition(payment_id, target),
        )

    async def release_escrow(self, payment_id: str) -> ApiResult[Document]:
        """Complete a held payment and release its escrow to the recipient."""
        return await self._guard(
            "release_escrow",
            "Failed to release escrow",
            lambda: self._transition(
                payment_id,
                PaymentStatus.COMPLETED.value,
                {"escrow_status": EscrowStatus.RELEASED.value},
                require_escrow=EscrowStatus.HELD,
            ),
        )

    async def refund_escrow(self, payment_id: str, reason: str) -> ApiResult[Document]:
        """Refund a payment to the payer."""
        return await self._guard(
            "refund_escrow",
            "Failed to refund escrow",
            lambda: self._transition(
                payment_id,
                PaymentStatus.REFUNDED.value,
                {"escrow_status": EscrowStatus.REFUNDED.value, "refund_reason": reason},
            ),
        )

    async def update(self, payment_id: str, request: UpdatePaymentRequest | dict[str, Any]) -> ApiResult[Document]:
        async def call() -> Document:
            updates = validate_request(UpdatePaymentRequest, request)
            return await self.orchestrator.execute(
                MutationSpec.update(self.collection, payment_id, updates.to_fields())
            )

        return await self._guard("update", "Failed to update payment", call)

    async def stats(self, date_range: DateRange | dict[str, str] | None = None) -> ApiResult[dict[str, Any]]:
        """Transaction count and amounts by status."""

        async def call() -> dict[str, Any]:
            window = validate_request(DateRange, date_range) if date_range is not None else None
            payments = await self._all(date_range_predicates(window))
            result = aggregate(
                payments,
                AggregationSpec(
                    sum="amount",
                    average="amount",
                    grouped_sum=GroupedSumSpec(value_field="amount", key_field="status"),
                    average_decimals=self.config.rounding.currency_decimals,
                ),
            )
            by_status = result.grouped_sums or {}
            return {
                "total_transactions": result.count,
                "total_amount": result.sum,
                "pending_amount": by_status.get(PaymentStatus.PENDING.value, 0.0),
                "completed_amount": by_status.get(PaymentStatus.COMPLETED.value, 0.0),
                "refunded_amount": by_status.get(PaymentStatus.REFUNDED.value, 0.0),
                "average_transaction_value": result.average,
            }

        return await self._guard("stats", "Failed to fetch payment statistics", call)
