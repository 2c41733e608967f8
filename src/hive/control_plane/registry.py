"""Registry of connected workers and their per-connection event fan-out."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, NamedTuple, Optional
from uuid import uuid4

from hive.errors import ConnectionLostError, WorkerNotFoundError
from hive.network.subscriptions import Subscribers, Subscription
from hive.network.transport.base import BaseTransport

LOGGER = logging.getLogger(__name__)

DEFAULT_BACKLOG_BYTES = 64 * 1024


class WorkerEntry(NamedTuple):
    """Point-in-time listing row; ``index`` is only valid for the listing that produced it."""

    index: int
    identity: str
    address: str
    port: int

    def render(self) -> str:
        return f"{self.index}) {self.identity} -> {self.address}:{self.port}"


@dataclass(eq=False)
class WorkerConnection:
    """A connected worker: identity, peer address and its live byte stream."""

    transport: BaseTransport
    id: str = field(default_factory=lambda: uuid4().hex)
    address: str = ""
    port: int = 0
    identity: Optional[str] = None
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    backlog_limit: int = DEFAULT_BACKLOG_BYTES
    _data: Subscribers[bytes] = field(init=False, repr=False)
    _closed_subscribers: Subscribers["WorkerConnection"] = field(init=False, repr=False)
    _backlog: bytearray = field(default_factory=bytearray, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.address:
            self.address, self.port = self.transport.peer
        self._data = Subscribers(f"worker {self.id} data")
        self._closed_subscribers = Subscribers(f"worker {self.id} close")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def display_name(self) -> str:
        return self.identity if self.identity is not None else "unknown"

    def set_identity(self, raw: str) -> None:
        """Record the identity reported by the handshake; allowed exactly once."""

        if self.identity is not None:
            raise ValueError(f"Worker {self.id} identity already set to {self.identity!r}")
        self.identity = raw.rstrip("\r\n")

    def on_data(self, callback: Callable[[bytes], None]) -> Subscription[bytes]:
        """Subscribe to inbound bytes; buffered backlog is replayed first."""

        if self._closed:
            raise ConnectionLostError(f"worker {self.display_name} already disconnected")
        subscription = self._data.subscribe(callback)
        if self._backlog:
            pending = bytes(self._backlog)
            self._backlog.clear()
            subscription.deliver(pending)
        return subscription

    def on_close(self, callback: Callable[["WorkerConnection"], None]) -> Subscription["WorkerConnection"]:
        if self._closed:
            raise ConnectionLostError(f"worker {self.display_name} already disconnected")
        return self._closed_subscribers.subscribe(callback)

    def subscriber_count(self) -> int:
        return len(self._data)

    def write(self, data: bytes) -> None:
        self.transport.write(data)

    async def drain(self) -> None:
        if self._closed:
            return
        await self.transport.drain()

    def feed(self, chunk: bytes) -> None:
        if self._closed:
            return
        if self._data:
            self._data.publish(chunk)
            return
        if self.backlog_limit <= 0:
            return
        self._backlog.extend(chunk)
        overflow = len(self._backlog) - self.backlog_limit
        if overflow > 0:
            del self._backlog[:overflow]

    def mark_closed(self) -> None:
        """Fire close subscribers once and drop every subscription."""

        if self._closed:
            return
        self._closed = True
        self._data.cancel_all()
        self._closed_subscribers.publish(self)
        self._closed_subscribers.cancel_all()
        self._backlog.clear()

    async def pump(self) -> None:
        """Read inbound chunks until the connection closes, fanning them out to subscribers."""

        try:
            while not self._closed:
                chunk = await self.transport.receive()
                if not chunk:
                    break
                self.feed(chunk)
        except ConnectionLostError as exc:
            LOGGER.debug("Worker %s stream failed: %s", self.id, exc)
        finally:
            self.mark_closed()
            await self.transport.close()

    async def close(self) -> None:
        self.mark_closed()
        await self.transport.close()


class WorkerRegistry:
    """Tracks connected workers in connection order."""

    def __init__(self) -> None:
        self._workers: Dict[str, WorkerConnection] = {}

    def __len__(self) -> int:
        return len(self._workers)

    def __contains__(self, worker: object) -> bool:
        return isinstance(worker, WorkerConnection) and self._workers.get(worker.id) is worker

    def register(self, worker: WorkerConnection) -> None:
        if worker.id in self._workers:
            raise ValueError(f"Worker {worker.id} already registered")
        self._workers[worker.id] = worker

    def remove(self, worker: WorkerConnection) -> bool:
        return self._workers.pop(worker.id, None) is not None

    def get(self, worker_id: str) -> Optional[WorkerConnection]:
        return self._workers.get(worker_id)

    def workers(self) -> list[WorkerConnection]:
        return list(self._workers.values())

    def enumerate(self) -> Iterator[WorkerEntry]:
        """Lazily list workers as ``(index, identity, address, port)`` in connection order.

        The order is snapshotted when this method is called, so indices stay
        consistent within one listing even if workers come and go meanwhile.
        """

        return self._entries(self.workers())

    @staticmethod
    def _entries(snapshot: list[WorkerConnection]) -> Iterator[WorkerEntry]:
        for index, worker in enumerate(snapshot):
            yield WorkerEntry(index, worker.display_name, worker.address, worker.port)

    def lookup_by_index(self, index: int | str) -> WorkerConnection:
        position = self._parse_index(index)
        snapshot = self.workers()
        if position is None or not 0 <= position < len(snapshot):
            raise WorkerNotFoundError(f"no worker at index {index!r}")
        return snapshot[position]

    @staticmethod
    def _parse_index(index: int | str) -> Optional[int]:
        if isinstance(index, bool):
            return None
        if isinstance(index, int):
            return index
        text = str(index).strip()
        if not text.isdigit() or not text.isascii():
            return None
        return int(text)

    async def close_all(self) -> None:
        workers = self.workers()
        for worker in workers:
            await worker.close()
        if workers:
            LOGGER.info("Closed %d worker connection(s)", len(workers))
