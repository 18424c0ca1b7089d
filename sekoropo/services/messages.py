"""Direct messages between users."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from sekoropo.models import ApiResult, Document, utc_now_iso
from sekoropo.models.schemas import CreateMessageRequest, UpdateMessageRequest
from sekoropo.orchestration import MutationSpec
from sekoropo.query.aggregator import MergedResultSet
from sekoropo.services.base import BaseService, Page, validate_request
from sekoropo.storage.base import Predicate

logger = logging.getLogger(__name__)

SORT_FIELD = "sent_at"


@dataclass
class ConversationSummary:
    """Latest message and unread count for one conversation partner."""

    partner_id: str
    last_message: Document
    unread_count: int = 0


@dataclass
class ConversationList:
    conversations: list[ConversationSummary] = field(default_factory=list)
    total: int = 0


def _between(user_a: str, user_b: str) -> list[list[Predicate]]:
    return [
        [Predicate.equal("sender_id", user_a), Predicate.equal("recipient_id", user_b)],
        [Predicate.equal("sender_id", user_b), Predicate.equal("recipient_id", user_a)],
    ]


def _involving(user_id: str) -> list[list[Predicate]]:
    return [[Predicate.equal("sender_id", user_id)], [Predicate.equal("recipient_id", user_id)]]


def group_conversations(messages: list[Document], user_id: str) -> list[ConversationSummary]:
    """Group messages by partner, newest conversation first.

    ``messages`` must already be sorted newest first, so the first message
    seen for a partner is the latest one.
    """
    by_partner: dict[str, ConversationSummary] = {}
    for message in messages:
        sender = message.get("sender_id")
        partner = message.get("recipient_id") if sender == user_id else sender
        if partner is None:
            continue
        summary = by_partner.get(partner)
        if summary is None:
            summary = by_partner[partner] = ConversationSummary(partner_id=partner, last_message=message)
        if message.get("recipient_id") == user_id and not message.get("is_read"):
            summary.unread_count += 1
    return list(by_partner.values())


class MessageService(BaseService):
    """Sending, reading and searching messages."""

    name = "messages"

    async def send(self, request: CreateMessageRequest | dict[str, Any]) -> ApiResult[Document]:
        async def call() -> Document:
            message = validate_request(CreateMessageRequest, request)
            fields = {**message.to_fields(), "is_read": False, "sent_at": utc_now_iso()}
            return await self.orchestrator.execute(MutationSpec.create(self.collection, fields))

        return await self._guard("send", "Failed to send message", call)

    async def get(self, message_id: str) -> ApiResult[Document]:
        return await self._guard(
            "get", "Failed to fetch message", lambda: self.store.get(self.collection, message_id)
        )

    async def conversation(
        self,
        user_a: str,
        user_b: str,
        job_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> ApiResult[MergedResultSet]:
        """Messages in either direction between two users, newest first."""
        common = [Predicate.equal("job_id", job_id)] if job_id else []
        return await self._guard(
            "conversation",
            "Failed to fetch conversation",
            lambda: self._merge(_between(user_a, user_b), common, limit, offset, SORT_FIELD),
        )

    async def user_conversations(
        self, user_id: str, limit: int | None = None, offset: int = 0
    ) -> ApiResult[ConversationList]:
        """Everyone a user has exchanged messages with, latest conversation first."""
        limit = self.default_limit if limit is None else limit

        async def call() -> ConversationList:
            merged = await self._merge(
                _involving(user_id),
                limit=self.config.query.stats_scan_limit,
                sort_field=SORT_FIELD,
            )
            summaries = group_conversations(merged.documents, user_id)
            return ConversationList(conversations=summaries[offset : offset + limit], total=len(summaries))

        return await self._guard("user_conversations", "Failed to fetch user conversations", call)

    async def mark_read(self, message_id: str) -> ApiResult[Document]:
        return await self._guard(
            "mark_read",
            "Failed to mark message as read",
            lambda: self.orchestrator.execute(
                MutationSpec.update(self.collection, message_id, {"is_read": True, "read_at": utc_now_iso()})
            ),
        )

    async def mark_conversation_read(
        self, user_id: str, partner_id: str, job_id: str | None = None
    ) -> ApiResult[int]:
        """Mark every unread message from ``partner_id`` to ``user_id`` as read.

        Returns:
            Number of messages updated
        """

        async def call() -> int:
            predicates = [
                Predicate.equal("sender_id", partner_id),
                Predicate.equal("recipient_id", user_id),
                Predicate.equal("is_read", False),
            ]
            if job_id:
                predicates.append(Predicate.equal("job_id", job_id))
            unread = await self._all(predicates, SORT_FIELD)
            read_at = utc_now_iso()
            await asyncio.gather(
                *(
                    self.orchestrator.execute(
                        MutationSpec.update(self.collection, message.id, {"is_read": True, "read_at": read_at})
                    )
                    for message in unread
                )
            )
            return len(unread)

        return await self._guard("mark_conversation_read", "Failed to mark conversation as read", call)

    async def unread_count(self, user_id: str) -> ApiResult[int]:
        return await self._guard(
            "unread_count",
            "Failed to fetch unread count",
            lambda: self._count([Predicate.equal("recipient_id", user_id), Predicate.equal("is_read", False)]),
        )

    async def update(self, message_id: str, request: UpdateMessageRequest | dict[str, Any]) -> ApiResult[Document]:
        async def call() -> Document:
            updates = validate_request(UpdateMessageRequest, request)
            return await self.orchestrator.execute(
                MutationSpec.update(self.collection, message_id, updates.to_fields())
            )

        return await self._guard("update", "Failed to update message", call)

    async def delete(self, message_id: str) -> ApiResult[None]:
        async def call() -> None:
            await self.orchestrator.execute(MutationSpec.delete(self.collection, message_id))

        return await self._guard("delete", "Failed to delete message", call)

    async def job_messages(self, job_id: str, limit: int | None = None, offset: int = 0) -> ApiResult[Page]:
        return await self._guard(
            "job_messages",
            "Failed to fetch job messages",
            lambda: self._page([Predicate.equal("job_id", job_id)], limit, offset, SORT_FIELD),
        )

    async def search(
        self, user_id: str, term: str, limit: int | None = None, offset: int = 0
    ) -> ApiResult[MergedResultSet]:
        """Messages sent or received by a user whose content contains ``term``."""
        return await self._guard(
            "search",
            "Failed to search messages",
            lambda: self._merge(
                _involving(user_id), [Predicate.search("content", term)], limit, offset, SORT_FIELD
            ),
        )
