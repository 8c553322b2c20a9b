"""Transport-neutral connection interface used by the session layer."""

from abc import ABC, abstractmethod
from typing import Any

from mohoot.messaging.encoder import decode, encode


class ConnectionProtocol(ABC):
    """
    One client connection to a quiz session.

    The session manager only talks to this interface, so the same code runs
    behind a WebSocket or an in-memory test double.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Unique identifier for this connection."""
        ...

    @property
    @abstractmethod
    def pin(self) -> str:
        """Session PIN taken from the WebSocket path (/ws/{pin})."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes: ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))

    async def receive_message(self) -> dict[str, Any]:
        return decode(await self.receive_bytes())
