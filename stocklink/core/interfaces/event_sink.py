"""Abstract interface for outbound notification delivery."""

from abc import ABC, abstractmethod

from stocklink.core.entities.notification import Notification


class IEventSink(ABC):
    """Outbound channel for branch notifications."""

    @abstractmethod
    async def emit(self, event: Notification) -> Notification:
        """Deliver a notification, returning it with any assigned id."""
        pass
