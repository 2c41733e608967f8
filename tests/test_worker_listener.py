import asyncio

import pytest

from hive.config import HiveSettings
from hive.console.session import OperatorSession, SessionState
from hive.control_plane.listener import WorkerListener
from hive.control_plane.registry import WorkerRegistry
from hive.errors import ConfigurationError
from hive.network.transport.dummy import DummyTransport


def _settings(**overrides) -> HiveSettings:
    overrides.setdefault("color", False)
    return HiveSettings(**overrides)


async def _wait_for(predicate, *, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_handshake_registers_worker_with_reported_identity():
    registry = WorkerRegistry()
    listener = WorkerListener(registry=registry, settings=_settings())
    transport = DummyTransport(("10.0.0.5", 4444))
    transport.feed(b"root\n")

    task = asyncio.create_task(listener.handle_transport(transport))
    await _wait_for(lambda: len(registry) == 1)

    assert transport.output() == "whoami\n"
    assert [entry.render() for entry in registry.enumerate()] == ["0) root -> 10.0.0.5:4444"]

    transport.feed_eof()
    await asyncio.wait_for(task, timeout=1)

    assert len(registry) == 0
    assert transport.is_closing()


@pytest.mark.asyncio
async def test_identity_request_is_configurable():
    registry = WorkerRegistry()
    listener = WorkerListener(registry=registry, settings=_settings(identity_request="hostname"))
    transport = DummyTransport(("10.0.0.5", 4444))
    transport.feed(b"box-01\r\n")

    task = asyncio.create_task(listener.handle_transport(transport))
    await _wait_for(lambda: len(registry) == 1)

    assert transport.output() == "hostname\n"
    assert registry.lookup_by_index(0).identity == "box-01"
    transport.feed_eof()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_worker_closing_during_handshake_is_never_registered():
    registry = WorkerRegistry()
    listener = WorkerListener(registry=registry, settings=_settings())
    transport = DummyTransport(("10.0.0.5", 4444))
    transport.feed_eof()

    await asyncio.wait_for(listener.handle_transport(transport), timeout=1)

    assert len(registry) == 0
    assert transport.is_closing()


@pytest.mark.asyncio
async def test_silent_worker_times_out_during_handshake():
    registry = WorkerRegistry()
    listener = WorkerListener(registry=registry, settings=_settings(handshake_timeout_seconds=0.01))
    transport = DummyTransport(("10.0.0.5", 4444))

    await asyncio.wait_for(listener.handle_transport(transport), timeout=1)

    assert len(registry) == 0
    assert transport.is_closing()


@pytest.mark.asyncio
async def test_bytes_after_identity_line_are_kept_for_the_first_attach():
    registry = WorkerRegistry()
    listener = WorkerListener(registry=registry, settings=_settings())
    transport = DummyTransport(("10.0.0.5", 4444))
    transport.feed(b"root\n# ")
    task = asyncio.create_task(listener.handle_transport(transport))
    await _wait_for(lambda: len(registry) == 1)

    received: list[bytes] = []
    registry.lookup_by_index(0).on_data(received.append)

    assert received == [b"# "]
    transport.feed_eof()
    await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_worker_disconnect_unregisters_and_detaches_operator():
    registry = WorkerRegistry()
    settings = _settings()
    listener = WorkerListener(registry=registry, settings=settings)
    worker_transport = DummyTransport(("10.0.0.5", 4444))
    worker_transport.feed(b"root\n")
    task = asyncio.create_task(listener.handle_transport(worker_transport))
    await _wait_for(lambda: len(registry) == 1)

    operator = DummyTransport(("127.0.0.1", 50000))
    session = OperatorSession(transport=operator, registry=registry, settings=settings)
    await session.handle_line(".attach 0")
    operator.take_output()

    worker_transport.feed(b"last words\n")
    worker_transport.feed_eof()
    await asyncio.wait_for(task, timeout=1)

    assert len(registry) == 0
    assert session.state is SessionState.IDLE
    assert operator.output() == "last words\n[connection closed with root]\n> "

    await session.handle_line(".enumerate")
    assert operator.output().endswith("no workers connected\n> ")


def test_registry_is_required():
    with pytest.raises(ConfigurationError):
        WorkerListener(registry=None, settings=_settings())


@pytest.mark.asyncio
async def test_cancelled_handshake_closes_the_connection():
    registry = WorkerRegistry()
    listener = WorkerListener(registry=registry, settings=_settings())
    transport = DummyTransport(("10.0.0.5", 4444))
    task = asyncio.create_task(listener.handle_transport(transport))
    await _wait_for(lambda: transport.output() == "whoami\n")

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert transport.is_closing()
    assert len(registry) == 0
