"""In-app notifications."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from sekoropo.models import ApiResult, Document, utc_now_iso
from sekoropo.models.schemas import CreateNotificationRequest, NotificationType
from sekoropo.orchestration import MutationSpec
from sekoropo.services.base import BaseService, Page, validate_request
from sekoropo.storage.base import Predicate

logger = logging.getLogger(__name__)


class NotificationService(BaseService):
    """Per-user notifications and their read state."""

    name = "notifications"

    async def _create(self, request: CreateNotificationRequest | dict[str, Any]) -> Document:
        notification = validate_request(CreateNotificationRequest, request)
        fields = {**notification.to_fields(), "is_read": False}
        return await self.orchestrator.execute(MutationSpec.create(self.collection, fields))

    async def create(self, request: CreateNotificationRequest | dict[str, Any]) -> ApiResult[Document]:
        return await self._guard("create", "Failed to create notification", lambda: self._create(request))

    async def create_bulk(
        self, requests: Sequence[CreateNotificationRequest | dict[str, Any]]
    ) -> ApiResult[list[Document]]:
        """Create several notifications concurrently.

        Every request is validated before any is written.
        """

        async def call() -> list[Document]:
            validated = [validate_request(CreateNotificationRequest, request) for request in requests]
            return list(await asyncio.gather(*(self._create(request) for request in validated)))

        return await self._guard("create_bulk", "Failed to create notifications", call)

    async def get(self, notification_id: str) -> ApiResult[Document]:
        return await self._guard(
            "get", "Failed to fetch notification", lambda: self.store.get(self.collection, notification_id)
        )

    async def for_user(
        self, user_id: str, unread_only: bool = False, limit: int | None = None, offset: int = 0
    ) -> ApiResult[Page]:
        predicates = [Predicate.equal("user_id", user_id)]
        if unread_only:
            predicates.append(Predicate.equal("is_read", False))
        return await self._guard(
            "for_user", "Failed to fetch user notifications", lambda: self._page(predicates, limit, offset)
        )

    async def by_type(
        self,
        user_id: str,
        notification_type: NotificationType | str,
        limit: int | None = None,
        offset: int = 0,
    ) -> ApiResult[Page]:
        return await self._guard(
            "by_type",
            "Failed to fetch notifications by type",
            lambda: self._page(
                [Predicate.equal("user_id", user_id), Predicate.equal("type", notification_type)],
                limit,
                offset,
            ),
        )

    async def mark_read(self, notification_id: str) -> ApiResult[Document]:
        return await self._guard(
            "mark_read",
            "Failed to mark notification as read",
            lambda: self.orchestrator.execute(
                MutationSpec.update(
                    self.collection, notification_id, {"is_read": True, "read_at": utc_now_iso()}
                )
            ),
        )

    async def mark_all_read(self, user_id: str) -> ApiResult[int]:
        """Mark every unread notification of a user as read; returns how many."""

        async def call() -> int:
            unread = await self._all([Predicate.equal("user_id", user_id), Predicate.equal("is_read", False)])
            read_at = utc_now_iso()
            await asyncio.gather(
                *(
                    self.orchestrator.execute(
                        MutationSpec.update(self.collection, n.id, {"is_read": True, "read_at": read_at})
                    )
                    for n in unread
                )
            )
            return len(unread)

        return await self._guard("mark_all_read", "Failed to mark all notifications as read", call)

    async def unread_count(self, user_id: str) -> ApiResult[int]:
        return await self._guard(
            "unread_count",
            "Failed to fetch unread count",
            lambda: self._count([Predicate.equal("user_id", user_id), Predicate.equal("is_read", False)]),
        )

    async def delete(self, notification_id: str) -> ApiResult[None]:
        async def call() -> None:
            await self.orchestrator.execute(MutationSpec.delete(self.collection, notification_id))

        return await self._guard("delete", "Failed to delete notification", call)

    async def delete_all_for_user(self, user_id: str) -> ApiResult[int]:
        """Delete every notification of a user; returns how many."""

        async def call() -> int:
            notifications = await self._all([Predicate.equal("user_id", user_id)])
            await asyncio.gather(
                *(self.orchestrator.execute(MutationSpec.delete(self.collection, n.id)) for n in notifications)
            )
            return len(notifications)

        return await self._guard("delete_all_for_user", "Failed to delete user notifications", call)
