"""Hive bootstrap entrypoint for listener wiring."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from hive.config import HiveSettings, get_settings
from hive.errors import FatalCommand
from hive.server import HiveServer

LOGGER = logging.getLogger(__name__)


async def setup(settings: Optional[HiveSettings] = None) -> HiveServer:
    """Construct and start the hive server."""

    server = HiveServer(settings=settings or get_settings())
    await server.start()
    return server


async def serve_forever(settings: Optional[HiveSettings] = None) -> None:
    """Serve both listeners until an operator issues shutdown, then raise :class:`FatalCommand`."""

    server = await setup(settings)
    try:
        reason = await server.serve_forever()
    except asyncio.CancelledError:
        LOGGER.info("Hive shutdown requested")
        raise
    finally:
        await server.stop()
    raise FatalCommand(reason, exit_code=0)
