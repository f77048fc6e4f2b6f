from abc import ABC, abstractmethod


class ClientInterface(ABC):
    """
    Abstract base class for outbound chat transports.
    Decouples the cron dispatcher from the delivery mechanism.
    """

    @abstractmethod
    async def send_message(self, target: str, text: str) -> None:
        """
        Deliver a plain text message. Raises on any delivery failure.

        Args:
            target: The conversation/channel identifier.
            text: The message body, sent verbatim.
        """

    async def close(self) -> None:
        """Release network resources held by the client."""
