"""In-memory transport for offline use and testing."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .base import BaseTransport

LOGGER = logging.getLogger(__name__)


class DummyTransport(BaseTransport):
    """Transport backed by in-memory buffers; inbound data is injected with :meth:`feed`."""

    def __init__(self, peer: tuple[str, int] = ("127.0.0.1", 0), *, line_limit: Optional[int] = None) -> None:
        self._peer = peer
        self._line_limit = line_limit
        self._inbound: asyncio.Queue[bytes] = asyncio.Queue()
        self._pending = bytearray()
        self._eof = False
        self._closed = False
        self.written = bytearray()
        self.drains = 0

    @property
    def peer(self) -> tuple[str, int]:
        return self._peer

    def feed(self, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._inbound.put_nowait(data)

    def feed_eof(self) -> None:
        self._inbound.put_nowait(b"")

    def write(self, data: bytes) -> None:
        if self._closed:
            LOGGER.debug("Dummy transport write() after close dropped: %r", data)
            return
        self.written.extend(data)

    async def drain(self) -> None:
        self.drains += 1
        LOGGER.debug("Dummy transport drain()")

    async def receive(self) -> bytes:
        if self._pending:
            data = bytes(self._pending)
            self._pending.clear()
            return data
        return await self._next_chunk()

    async def readline(self) -> bytes:
        limit = self._line_limit
        while True:
            newline = self._pending.find(b"\n")
            if newline >= 0 and (limit is None or newline < limit):
                return self._take(newline + 1)
            if limit is not None and len(self._pending) >= limit:
                return self._take(limit)
            chunk = await self._next_chunk()
            if not chunk:
                return self._take(len(self._pending))
            self._pending.extend(chunk)

    def _take(self, size: int) -> bytes:
        data = bytes(self._pending[:size])
        del self._pending[:size]
        return data

    async def _next_chunk(self) -> bytes:
        if self._eof:
            return b""
        chunk = await self._inbound.get()
        if not chunk:
            self._eof = True
        return chunk

    def is_closing(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        LOGGER.debug("Dummy transport close()")
        self._closed = True
        self.feed_eof()

    def output(self) -> str:
        """Everything written so far, decoded."""

        return self.written.decode("utf-8", errors="replace")

    def take_output(self) -> str:
        text = self.output()
        self.written.clear()
        return text
