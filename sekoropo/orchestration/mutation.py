"""Primary writes with best-effort derived writes.

A primary mutation is applied first. Only if it succeeds is the side effect
derived from its result and applied. The two writes are not atomic: a failed
side effect is logged and counted, and the caller still sees success because
the entity it asked to change was changed.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from sekoropo.errors import MutationFailure, SekoropoError, SideEffectFailure, ValidationFailure
from sekoropo.models import ApiResult, Document, utc_now_iso
from sekoropo.observability import add_span_attributes, traced
from sekoropo.observability.prometheus_metrics import record_side_effect_failure

if TYPE_CHECKING:
    from sekoropo.storage.base import DocumentStore

logger = logging.getLogger(__name__)


class MutationOperation(str, Enum):
    """Kinds of document writes."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class MutationSpec:
    """A single document write."""

    operation: MutationOperation
    collection: str
    document_id: str | None = None
    fields: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls, collection: str, fields: dict[str, Any], document_id: str | None = None
    ) -> MutationSpec:
        return cls(MutationOperation.CREATE, collection, document_id, dict(fields))

    @classmethod
    def update(cls, collection: str, document_id: str, fields: dict[str, Any]) -> MutationSpec:
        return cls(MutationOperation.UPDATE, collection, document_id, dict(fields))

    @classmethod
    def delete(cls, collection: str, document_id: str) -> MutationSpec:
        return cls(MutationOperation.DELETE, collection, document_id)


SideEffectResult = MutationSpec | None
SideEffectDeriver = Callable[[Document], SideEffectResult | Awaitable[SideEffectResult]]


class MutationOrchestrator:
    """Applies a primary mutation, then an optional derived mutation."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def apply(self, mutation: MutationSpec) -> Document:
        """Apply one mutation and return the affected document.

        Creates and updates are stamped with ``updated_at`` (and
        ``created_at`` for creates) unless the caller supplied them. A delete
        returns the document as it was before deletion.
        """
        now = utc_now_iso()

        if mutation.operation is MutationOperation.CREATE:
            fields = {"created_at": now, "updated_at": now, **mutation.fields}
            return await self.store.create(mutation.collection, fields, mutation.document_id)

        if not mutation.document_id:
            raise ValidationFailure(f"{mutation.operation.value} requires a document_id")

        if mutation.operation is MutationOperation.UPDATE:
            fields = {"updated_at": now, **mutation.fields}
            return await self.store.update(mutation.collection, mutation.document_id, fields)

        snapshot = await self.store.get(mutation.collection, mutation.document_id)
        await self.store.delete(mutation.collection, mutation.document_id)
        return snapshot

    @traced("mutate_with_side_effect")
    async def execute(
        self,
        primary: MutationSpec,
        derive_side_effect: SideEffectDeriver | None = None,
    ) -> Document:
        """Apply ``primary`` and then, best effort, its derived side effect.

        Args:
            primary: The write the caller cares about
            derive_side_effect: Called with the primary result; returns the
                derived write, or None when nothing needs writing. May be
                sync or async.

        Returns:
            Result of the primary write

        Raises:
            MutationFailure: The primary write failed; no side effect was attempted
        """
        add_span_attributes(
            {"mutation.operation": primary.operation.value, "mutation.collection": primary.collection}
        )

        try:
            result = await self.apply(primary)
        except Exception as e:
            logger.error(
                f"Primary {primary.operation.value} on {primary.collection} "
                f"({primary.document_id or 'new'}) failed: {e}"
            )
            raise MutationFailure(
                primary.operation.value, primary.collection, primary.document_id, e
            ) from e

        if derive_side_effect is not None:
            await self._apply_side_effect(result, derive_side_effect)

        return result

    async def _apply_side_effect(
        self,
        primary_result: Document,
        derive_side_effect: SideEffectDeriver,
    ) -> None:
        """Derive and apply the side effect, downgrading any failure to a warning."""
        side_effect: MutationSpec | None = None
        try:
            derived = derive_side_effect(primary_result)
            side_effect = await derived if inspect.isawaitable(derived) else derived
            if side_effect is None:
                logger.debug(f"No side effect for {primary_result.collection}/{primary_result.id}")
                return
            await self.apply(side_effect)
        except Exception as e:
            collection = side_effect.collection if side_effect is not None else None
            failure = SideEffectFailure(collection, e)
            logger.warning(
                f"{failure} (after {primary_result.collection}/{primary_result.id}); "
                "primary write kept"
            )
            record_side_effect_failure(collection)
            return

        logger.debug(
            f"Applied side effect {side_effect.operation.value} on "
            f"{side_effect.collection}/{side_effect.document_id}"
        )


async def mutate_with_side_effect(
    store: DocumentStore,
    primary: MutationSpec,
    derive_side_effect: SideEffectDeriver | None = None,
) -> ApiResult[Document]:
    """Envelope-returning form of :meth:`MutationOrchestrator.execute`."""
    try:
        result = await MutationOrchestrator(store).execute(primary, derive_side_effect)
    except SekoropoError as e:
        return ApiResult.fail(str(e))
    return ApiResult.ok(result)
