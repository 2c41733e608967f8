"""Operator-facing listener: one OperatorSession per connection."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from hive.config import HiveSettings, get_settings
from hive.control_plane.registry import WorkerRegistry
from hive.errors import ConfigurationError
from hive.lifecycle import ShutdownSignal
from hive.network.transport.base import BaseTransport
from hive.network.transport.stream import StreamTransport

from .commands import CommandTable
from .session import OperatorSession

LOGGER = logging.getLogger(__name__)


class OperatorListener:
    """Accepts operator connections and runs a console session for each."""

    def __init__(
        self,
        *,
        registry: WorkerRegistry,
        settings: Optional[HiveSettings] = None,
        shutdown: Optional[ShutdownSignal] = None,
        started_at: Optional[float] = None,
    ) -> None:
        if registry is None:
            raise ConfigurationError("OperatorListener requires a WorkerRegistry")
        self._registry = registry
        self._settings = settings or get_settings()
        self._shutdown = shutdown or ShutdownSignal()
        self._started_at = started_at
        self._commands = CommandTable(marker=self._settings.command_marker)
        self._sessions: set[OperatorSession] = set()

    @property
    def sessions(self) -> frozenset[OperatorSession]:
        return frozenset(self._sessions)

    def create_session(self, transport: BaseTransport) -> OperatorSession:
        return OperatorSession(
            transport=transport,
            registry=self._registry,
            settings=self._settings,
            commands=self._commands,
            shutdown=self._shutdown,
            started_at=self._started_at,
        )

    async def handle_stream(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        await self.handle_transport(StreamTransport(reader, writer))

    async def handle_transport(self, transport: BaseTransport) -> None:
        session = self.create_session(transport)
        self._sessions.add(session)
        address, port = transport.peer
        LOGGER.info("Operator connected from %s:%s", address, port)
        try:
            await session.run()
        except Exception:  # noqa: BLE001
            LOGGER.exception("Operator session %s:%s crashed; closing connection", address, port)
        finally:
            self._sessions.discard(session)
            await session.close()
            LOGGER.info("Operator %s:%s disconnected", address, port)

    async def close_all(self) -> None:
        for session in list(self._sessions):
            await session.close()
