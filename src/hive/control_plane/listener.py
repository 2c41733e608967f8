"""Worker-facing listener: identity handshake and registry bookkeeping."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from hive.config import HiveSettings, get_settings
from hive.errors import ConfigurationError, ConnectionLostError
from hive.network.transport.base import BaseTransport
from hive.network.transport.stream import StreamTransport

from .registry import WorkerConnection, WorkerRegistry

LOGGER = logging.getLogger(__name__)


class WorkerListener:
    """Accepts worker connections, asks for their identity and registers them."""

    def __init__(self, *, registry: WorkerRegistry, settings: Optional[HiveSettings] = None) -> None:
        if registry is None:
            raise ConfigurationError("WorkerListener requires a WorkerRegistry")
        self._registry = registry
        self._settings = settings or get_settings()

    @property
    def registry(self) -> WorkerRegistry:
        return self._registry

    async def handle_stream(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await self.handle_transport(StreamTransport(reader, writer))

    async def handle_transport(self, transport: BaseTransport) -> None:
        address, port = transport.peer
        LOGGER.debug("Worker connection opened from %s:%s", address, port)
        reply: Optional[bytes] = None
        try:
            reply = await self._handshake(transport)
        except asyncio.TimeoutError:
            LOGGER.warning("Worker %s:%s did not report an identity in time; closing", address, port)
        except ConnectionLostError as exc:
            LOGGER.info("Worker %s:%s dropped during handshake: %s", address, port, exc)
        else:
            if reply is None:
                LOGGER.info("Worker %s:%s closed before reporting an identity", address, port)
        finally:
            # covers cancellation as well: an unregistered worker never keeps its socket
            if reply is None:
                await transport.close()
        if reply is None:
            return

        identity, _, remainder = reply.partition(b"\n")
        worker = WorkerConnection(
            transport=transport,
            address=address,
            port=port,
            backlog_limit=self._settings.worker_backlog_bytes,
        )
        worker.set_identity(identity.decode("utf-8", errors="replace"))
        self._registry.register(worker)
        worker.on_close(self._on_worker_closed)
        if remainder:
            worker.feed(remainder)
        LOGGER.info("Worker %s joined from %s:%s (%d connected)", worker.identity, address, port, len(self._registry))

        try:
            await worker.pump()
        except asyncio.CancelledError:
            LOGGER.debug("Worker %s handler cancelled", worker.identity)
            raise
        finally:
            self._registry.remove(worker)

    async def _handshake(self, transport: BaseTransport) -> Optional[bytes]:
        transport.send_line(self._settings.identity_request)
        await transport.drain()
        chunk = await asyncio.wait_for(transport.receive(), timeout=self._settings.handshake_timeout_seconds)
        if not chunk:
            return None
        return chunk

    def _on_worker_closed(self, worker: WorkerConnection) -> None:
        self._registry.remove(worker)
        LOGGER.info(
            "Worker %s left from %s:%s (%d connected)",
            worker.display_name,
            worker.address,
            worker.port,
            len(self._registry),
        )
