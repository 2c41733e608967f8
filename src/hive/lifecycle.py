"""Process-wide shutdown signal observed by the hosting process."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

LOGGER = logging.getLogger(__name__)

PROCESS_STARTED = time.monotonic()


class ShutdownSignal:
    """One-shot flag an operator session raises to ask the host to tear everything down."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def requested(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def request(self, reason: str = "shutdown requested") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        LOGGER.warning("Hive shutdown requested: %s", reason)
        self._event.set()

    async def wait(self) -> str:
        await self._event.wait()
        return self._reason or "shutdown requested"
