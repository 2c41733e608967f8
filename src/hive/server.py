"""Binds the worker and operator listeners and tears them down on shutdown."""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
import time
from typing import Optional

from hive.config import HiveSettings, get_settings
from hive.console.listener import OperatorListener
from hive.control_plane.listener import WorkerListener
from hive.control_plane.registry import WorkerRegistry
from hive.errors import ConfigurationError
from hive.lifecycle import ShutdownSignal

LOGGER = logging.getLogger(__name__)

CLOSE_TIMEOUT_SECONDS = 5.0


class HiveServer:
    """Owns the shared registry, both listen sockets and the shutdown signal."""

    def __init__(
        self,
        *,
        settings: Optional[HiveSettings] = None,
        registry: Optional[WorkerRegistry] = None,
        shutdown: Optional[ShutdownSignal] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._registry = registry if registry is not None else WorkerRegistry()
        self._shutdown = shutdown or ShutdownSignal()
        self._started_at = time.monotonic()
        self.worker_listener = WorkerListener(registry=self._registry, settings=self._settings)
        self.operator_listener = OperatorListener(
            registry=self._registry,
            settings=self._settings,
            shutdown=self._shutdown,
            started_at=self._started_at,
        )
        self._worker_server: Optional[asyncio.AbstractServer] = None
        self._operator_server: Optional[asyncio.AbstractServer] = None

    @property
    def registry(self) -> WorkerRegistry:
        return self._registry

    @property
    def shutdown_signal(self) -> ShutdownSignal:
        return self._shutdown

    @property
    def worker_address(self) -> tuple[str, int]:
        return self._bound_address(self._worker_server)

    @property
    def operator_address(self) -> tuple[str, int]:
        return self._bound_address(self._operator_server)

    @staticmethod
    def _bound_address(server: Optional[asyncio.AbstractServer]) -> tuple[str, int]:
        if server is None or not server.sockets:
            raise RuntimeError("Listener not started")
        sockname = server.sockets[0].getsockname()
        return str(sockname[0]), int(sockname[1])

    async def start(self) -> None:
        if self._worker_server is not None:
            return
        settings = self._settings
        try:
            self._worker_server = await self._bind(
                self.worker_listener.handle_stream,
                settings.worker_host,
                settings.worker_port,
                option="--worker-port / HIVE_WORKER_PORT",
            )
            self._operator_server = await self._bind(
                self.operator_listener.handle_stream,
                settings.operator_host,
                settings.operator_port,
                option="--operator-port / HIVE_OPERATOR_PORT",
            )
        except ConfigurationError:
            await self.stop()
            raise
        LOGGER.info(
            "Hive started on %s:%s, waiting for workers on %s:%s",
            *self.operator_address,
            *self.worker_address,
        )

    @staticmethod
    async def _bind(handler, host: str, port: int, *, option: str) -> asyncio.AbstractServer:
        try:
            return await asyncio.start_server(handler, host=host, port=port)
        except OSError as exc:
            if exc.errno == errno.EADDRINUSE:
                raise ConfigurationError(
                    f"Hive failed to start: {host}:{port} is already in use; choose another port via {option}"
                ) from exc
            raise ConfigurationError(f"Hive failed to bind {host}:{port}: {exc}") from exc

    async def serve_forever(self) -> str:
        """Run until an operator requests shutdown; returns the shutdown reason."""

        await self.start()
        try:
            reason = await self._shutdown.wait()
        finally:
            await self.stop()
        return reason

    async def stop(self) -> None:
        servers = [server for server in (self._operator_server, self._worker_server) if server is not None]
        for server in servers:
            server.close()
        await self.operator_listener.close_all()
        await self._registry.close_all()
        for server in servers:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(server.wait_closed(), timeout=CLOSE_TIMEOUT_SECONDS)
        self._operator_server = None
        self._worker_server = None
