import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from core.errors import TransportFailure, TransportUnavailable
from interfaces.base import ClientInterface

logger = logging.getLogger("core.gateway")


class TransportGateway:
    """
    Holds the single active outbound chat client.

    The bot can be started, stopped or reconnected with a new token at any
    time; the scheduler only ever sees this gateway, and swapping the client
    is a single reference replacement.
    """
    def __init__(self):
        self._client: Optional[ClientInterface] = None
        self._attached_at: Optional[datetime] = None
        self._lock = threading.Lock()

    @property
    def client(self) -> Optional[ClientInterface]:
        return self._client

    @property
    def attached_at(self) -> Optional[datetime]:
        return self._attached_at

    @property
    def is_attached(self) -> bool:
        return self._client is not None

    def attach(self, client: ClientInterface) -> Optional[ClientInterface]:
        """Make `client` the active transport. Returns the replaced client, if any."""
        with self._lock:
            previous = self._client
            self._client = client
            self._attached_at = datetime.now(timezone.utc)
        logger.info(f"🔌 Attached transport client: {type(client).__name__}")
        return previous

    def detach(self) -> Optional[ClientInterface]:
        """Drop the active transport. Returns it so the caller can close it."""
        with self._lock:
            previous = self._client
            self._client = None
            self._attached_at = None
        if previous is not None:
            logger.info(f"🔌 Detached transport client: {type(previous).__name__}")
        return previous

    async def send_message(self, target: str, text: str) -> None:
        """Route a text message through the active client."""
        client = self._client
        if client is None:
            raise TransportUnavailable("No transport client attached")
        try:
            await client.send_message(target, text)
        except Exception as e:
            raise TransportFailure(f"Delivery to {target} failed: {e}") from e


# Singleton instance
gateway = TransportGateway()
