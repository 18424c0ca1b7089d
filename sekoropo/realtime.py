"""Registry of active realtime subscriptions.

The realtime transport belongs to the hosted backend. This module only tracks
the cancellation callbacks it hands out so a caller can tear them all down at
once (for example on logout). Each caller owns its own manager.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class SubscriptionManager:
    """Tracks unsubscribe callbacks keyed by channel name."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, Callable[[], None]] = {}

    def add(self, key: str, unsubscribe: Callable[[], None]) -> None:
        """Register a subscription, cancelling any previous one under ``key``."""
        previous = self._subscriptions.pop(key, None)
        if previous is not None:
            logger.debug(f"Replacing subscription {key}")
            previous()
        self._subscriptions[key] = unsubscribe

    def remove(self, key: str) -> bool:
        """Cancel and forget one subscription. Returns False if unknown."""
        unsubscribe = self._subscriptions.pop(key, None)
        if unsubscribe is None:
            return False
        unsubscribe()
        return True

    def dispose_all(self) -> int:
        """Cancel every subscription and return how many were cancelled.

        A failing callback is logged and does not stop the teardown.
        """
        subscriptions, self._subscriptions = self._subscriptions, {}
        for key, unsubscribe in subscriptions.items():
            try:
                unsubscribe()
            except Exception as e:
                logger.warning(f"Failed to cancel subscription {key}: {e}")
        logger.info(f"Disposed {len(subscriptions)} realtime subscriptions")
        return len(subscriptions)

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __contains__(self, key: object) -> bool:
        return key in self._subscriptions
