"""Transport abstractions for worker and operator connections."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseTransport(ABC):
    """Byte-stream transport consumed by the registry and operator sessions."""

    @property
    @abstractmethod
    def peer(self) -> tuple[str, int]:
        """Remote ``(address, port)`` of the connection."""

    @abstractmethod
    def write(self, data: bytes) -> None:
        """Queue bytes for sending without waiting."""

    @abstractmethod
    async def drain(self) -> None:
        ...

    @abstractmethod
    async def receive(self) -> bytes:
        """Return the next inbound chunk, or ``b""`` once the peer closed."""

    @abstractmethod
    async def readline(self) -> bytes:
        """Return the next inbound line including its terminator, or ``b""`` at EOF.

        A line longer than the transport's buffer limit is returned in pieces; every
        piece but the last lacks the trailing newline.
        """

    @abstractmethod
    def is_closing(self) -> bool:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    def send_line(self, text: str) -> None:
        self.write(f"{text}\n".encode("utf-8"))
