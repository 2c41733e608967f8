"""asyncio stream transport for accepted TCP connections."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from hive.errors import ConnectionLostError

from .base import BaseTransport

LOGGER = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096


class StreamTransport(BaseTransport):
    """Thin wrapper around an ``asyncio.StreamReader``/``StreamWriter`` pair."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._chunk_size = chunk_size
        peer = writer.get_extra_info("peername") or ("unknown", 0)
        self._peer = (str(peer[0]), int(peer[1]))

    @property
    def peer(self) -> tuple[str, int]:
        return self._peer

    def write(self, data: bytes) -> None:
        if self._writer.is_closing():
            LOGGER.debug("Dropping %d bytes for closed connection %s:%s", len(data), *self._peer)
            return
        self._writer.write(data)

    async def drain(self) -> None:
        if self._writer.is_closing():
            return
        try:
            await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            raise ConnectionLostError(f"connection to {self._peer[0]}:{self._peer[1]} lost") from exc

    async def receive(self) -> bytes:
        try:
            return await self._reader.read(self._chunk_size)
        except (ConnectionError, OSError) as exc:
            raise ConnectionLostError(f"connection to {self._peer[0]}:{self._peer[1]} lost") from exc

    async def readline(self) -> bytes:
        try:
            return await self._reader.readuntil(b"\n")
        except asyncio.IncompleteReadError as exc:
            return exc.partial
        except asyncio.LimitOverrunError as exc:
            # Hand back what is buffered; the rest of the line follows on the next call.
            return await self._reader.readexactly(exc.consumed)
        except (ConnectionError, OSError) as exc:
            raise ConnectionLostError(f"connection to {self._peer[0]}:{self._peer[1]} lost") from exc

    def is_closing(self) -> bool:
        return self._writer.is_closing()

    async def close(self) -> None:
        if not self._writer.is_closing():
            self._writer.close()
        with contextlib.suppress(ConnectionError, OSError):
            await self._writer.wait_closed()
