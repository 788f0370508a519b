"""Transport-independent view of one client socket speaking MessagePack."""

from abc import ABC, abstractmethod
from typing import Any

from avalon.messaging.encoder import decode, encode


class ConnectionProtocol(ABC):
    """
    One client connection as seen by the router and the session managers.

    Starlette sockets and the in-memory MockConnection used by tests both
    implement the four byte-level methods; dict messages go through the
    encoder on top of them.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str:
        """Server-assigned id of the socket, distinct from the player id handed out on join."""
        ...

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None: ...

    @abstractmethod
    async def receive_bytes(self) -> bytes:
        """Wait for the next binary frame; raises when the client is gone."""
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close with a WebSocket close code: 1000 on retirement, 1011 on server errors."""
        ...

    async def send_message(self, data: dict[str, Any]) -> None:
        await self.send_bytes(encode(data))

    async def receive_message(self) -> dict[str, Any]:
        """Read one frame and decode it; malformed payloads raise from the decoder."""
        return decode(await self.receive_bytes())
