"""Abstract notification sink.

The alert engine depends only on this interface. Delivery is best effort:
implementations raise NotificationError and the engine logs and moves on.
"""

from abc import ABC, abstractmethod

from pricewatch.logging import get_logger

logger = get_logger(__name__)


class Notifier(ABC):
    """Sends a text message to a chat."""

    async def start(self) -> None:
        """Acquire resources (sessions, sockets). No-op by default."""

    async def close(self) -> None:
        """Release resources. No-op by default."""

    @abstractmethod
    async def send(self, chat_id: int, text: str) -> None:
        """Deliver text to chat_id.

        Raises:
            NotificationError: Delivery failed.
        """
        ...


class LogNotifier(Notifier):
    """Writes notifications to the log. Used when no bot token is configured."""

    async def send(self, chat_id: int, text: str) -> None:
        logger.info("notification", chat_id=chat_id, text=text)
