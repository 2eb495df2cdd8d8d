from __future__ import annotations

from abc import ABC, abstractmethod

from painradar.modules.notifications.schemas import DigestIdea


class Notifier(ABC):
    """Outbound channel for idea digests."""

    @abstractmethod
    async def send_digest(
        self, recipient: str, ideas: list[DigestIdea], unsubscribe_token: str
    ) -> str | None:
        """Deliver one digest. Returns the provider's message ID, if any.

        Raises DeliveryFailed when the provider rejects the message.
        """
