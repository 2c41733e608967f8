import pytest

from hive.config import HiveSettings
from hive.console.session import OperatorSession, SessionState
from hive.control_plane.registry import WorkerConnection, WorkerRegistry
from hive.errors import ConfigurationError, ConnectionLostError
from hive.lifecycle import ShutdownSignal
from hive.network.transport.dummy import DummyTransport


def _settings(**overrides) -> HiveSettings:
    overrides.setdefault("color", False)
    overrides.setdefault("welcome_message", "welcome")
    return HiveSettings(**overrides)


def _add_worker(
    registry: WorkerRegistry,
    identity: str = "root",
    peer: tuple[str, int] = ("10.0.0.5", 4444),
) -> tuple[WorkerConnection, DummyTransport]:
    transport = DummyTransport(peer)
    worker = WorkerConnection(transport=transport)
    worker.set_identity(identity)
    registry.register(worker)
    return worker, transport


def _session(registry: WorkerRegistry, **kwargs) -> tuple[OperatorSession, DummyTransport]:
    transport = DummyTransport(("127.0.0.1", 50000))
    kwargs.setdefault("settings", _settings())
    session = OperatorSession(transport=transport, registry=registry, **kwargs)
    return session, transport


@pytest.mark.asyncio
async def test_enumerate_without_workers_reports_none():
    session, operator = _session(WorkerRegistry())

    await session.handle_line(".enumerate")

    assert operator.output() == "no workers connected\n> "


@pytest.mark.asyncio
async def test_enumerate_lists_connected_worker():
    registry = WorkerRegistry()
    _add_worker(registry)
    session, operator = _session(registry)

    await session.handle_line(".enumerate\n")

    assert operator.output() == "0) root -> 10.0.0.5:4444\n> "


@pytest.mark.asyncio
async def test_attach_then_second_attach_then_detach():
    registry = WorkerRegistry()
    worker, _ = _add_worker(registry)
    session, operator = _session(registry)

    await session.handle_line(".attach 0")
    assert session.state is SessionState.ATTACHED
    assert session.attached is worker
    assert session.prompt == "root > "
    assert operator.take_output() == "attached to 0 on 10.0.0.5:4444\nroot > "

    await session.handle_line(".attach 0")
    assert "must detach first" in operator.take_output()
    assert session.prompt == "root > "
    assert session.attached is worker

    await session.handle_line(".detach")
    assert session.state is SessionState.IDLE
    assert session.attached is None
    assert session.prompt == "> "
    assert operator.take_output() == "detached from root\n> "


@pytest.mark.asyncio
async def test_attach_while_attached_never_replaces_attachment():
    registry = WorkerRegistry()
    first, _ = _add_worker(registry, "first")
    _add_worker(registry, "second", ("10.0.0.6", 4444))
    session, operator = _session(registry)

    await session.handle_line(".attach 0")
    await session.handle_line(".attach 1")

    assert session.attached is first
    assert "must detach first" in operator.output()


@pytest.mark.asyncio
@pytest.mark.parametrize("index", ["1", "-1", "abc", "0x0"])
async def test_attach_rejects_unknown_index(index):
    registry = WorkerRegistry()
    _add_worker(registry)
    session, operator = _session(registry)

    await session.handle_line(f".attach {index}")

    assert "worker not found" in operator.output()
    assert session.state is SessionState.IDLE
    assert session.prompt == "> "


@pytest.mark.asyncio
async def test_attach_without_index_requires_one():
    registry = WorkerRegistry()
    _add_worker(registry)
    session, operator = _session(registry)

    await session.handle_line(".attach")

    assert operator.output().startswith("index required")
    assert session.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_detach_while_idle_is_silent_noop():
    session, operator = _session(WorkerRegistry())

    await session.handle_line(".detach")
    await session.handle_line(".detach")

    assert operator.output() == "> > "
    assert session.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_detach_twice_after_attach():
    registry = WorkerRegistry()
    worker, _ = _add_worker(registry)
    session, _ = _session(registry)
    await session.handle_line(".attach 0")

    session.detach()
    session.detach()

    assert session.state is SessionState.IDLE
    assert worker.subscriber_count() == 0


@pytest.mark.asyncio
async def test_passthrough_preserves_order_and_terminates_lines():
    registry = WorkerRegistry()
    _, worker_transport = _add_worker(registry)
    session, _ = _session(registry)
    await session.handle_line(".attach 0")

    for line in ("a", "b", "c"):
        await session.handle_line(line)

    assert bytes(worker_transport.written) == b"a\nb\nc\n"


@pytest.mark.asyncio
async def test_passthrough_forwards_empty_lines_while_attached():
    registry = WorkerRegistry()
    _, worker_transport = _add_worker(registry)
    session, _ = _session(registry)
    await session.handle_line(".attach 0")

    await session.handle_line("\n")

    assert bytes(worker_transport.written) == b"\n"


@pytest.mark.asyncio
async def test_idle_text_is_not_a_valid_command():
    session, operator = _session(WorkerRegistry())

    await session.handle_line("ls -la")

    assert operator.output() == '"ls -la" is not a valid command\n> '


@pytest.mark.asyncio
async def test_idle_empty_line_only_reissues_prompt():
    session, operator = _session(WorkerRegistry())

    await session.handle_line("")
    await session.handle_line("   \r\n")

    assert operator.output() == "> > "


@pytest.mark.asyncio
async def test_worker_output_is_forwarded_while_attached_only():
    registry = WorkerRegistry()
    worker, _ = _add_worker(registry)
    session, operator = _session(registry)
    await session.handle_line(".attach 0")
    operator.take_output()

    worker.feed(b"uid=0(root)\n")
    assert operator.take_output() == "uid=0(root)\n"

    await session.handle_line(".detach")
    operator.take_output()
    worker.feed(b"late output")

    assert operator.output() == ""


@pytest.mark.asyncio
async def test_backlog_is_replayed_after_attach_confirmation():
    registry = WorkerRegistry()
    worker, _ = _add_worker(registry)
    worker.feed(b"$ ")
    session, operator = _session(registry)

    await session.handle_line(".attach 0")

    assert operator.output() == "attached to 0 on 10.0.0.5:4444\n$ root > "


@pytest.mark.asyncio
async def test_worker_close_forces_session_idle():
    registry = WorkerRegistry()
    worker, _ = _add_worker(registry)
    session, operator = _session(registry)
    await session.handle_line(".attach 0")
    operator.take_output()

    worker.mark_closed()
    worker.feed(b"ghost")

    assert session.state is SessionState.IDLE
    assert session.prompt == "> "
    assert session.attached is None
    assert operator.output() == "[connection closed with root]\n> "


@pytest.mark.asyncio
async def test_chunk_in_flight_is_dropped_once_session_detaches():
    registry = WorkerRegistry()
    worker, _ = _add_worker(registry)
    session, operator = _session(registry)
    # An earlier subscriber detaches the session while a chunk is being fanned out.
    worker.on_data(lambda chunk: session.detach())
    await session.handle_line(".attach 0")
    operator.take_output()

    worker.feed(b"queued")

    assert "queued" not in operator.output()
    assert session.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_quit_closes_only_this_session_and_releases_worker():
    registry = WorkerRegistry()
    worker, _ = _add_worker(registry)
    session, operator = _session(registry)
    other, _ = _session(registry)
    await session.handle_line(".attach 0")
    operator.take_output()

    await session.handle_line(".quit")

    assert operator.output() == "Bye!\n"
    assert session.closed
    assert operator.is_closing()
    assert worker.subscriber_count() == 0
    assert not worker.closed
    assert len(registry) == 1
    assert not other.closed


@pytest.mark.asyncio
async def test_q_alias_quits():
    session, operator = _session(WorkerRegistry())

    await session.handle_line(".q")

    assert session.closed
    assert operator.output() == "Bye!\n"


@pytest.mark.asyncio
async def test_shutdown_raises_signal_without_exiting():
    shutdown = ShutdownSignal()
    session, operator = _session(WorkerRegistry(), shutdown=shutdown)

    await session.handle_line(".shutdown")

    assert shutdown.requested
    assert "127.0.0.1:50000" in shutdown.reason
    assert not session.closed
    assert operator.output().startswith("Tearing down the hive")


@pytest.mark.asyncio
async def test_unknown_command_suggests_completions():
    session, operator = _session(WorkerRegistry())

    await session.handle_line(".enu")
    assert operator.take_output() == "unknown command: .enu (did you mean .enumerate?)\n> "

    await session.handle_line(".bogus")
    assert operator.take_output() == "unknown command: .bogus\n> "


@pytest.mark.asyncio
async def test_help_lists_commands_in_declaration_order():
    session, operator = _session(WorkerRegistry())

    await session.handle_line(".help")

    rows = operator.output().splitlines()
    names = [row.split("\t")[0].split()[0] for row in rows[:-1]]
    assert names == [
        ".help",
        ".enumerate",
        ".attach",
        ".detach",
        ".interactive",
        ".uptime",
        ".about",
        ".quit",
        ".shutdown",
    ]
    assert ".attach <index>\t\tattach to a worker and forward its stream" in rows


@pytest.mark.asyncio
async def test_uptime_is_humanized():
    session, operator = _session(WorkerRegistry(), started_at=100.0, clock=lambda: 100.0 + 3 * 3600)

    await session.handle_line(".uptime")

    assert operator.output() == "3 hours\n> "


@pytest.mark.asyncio
async def test_about_returns_static_text():
    session, operator = _session(WorkerRegistry(), settings=_settings(about_text="hive test build"))

    await session.handle_line(".about")

    assert operator.output() == "hive test build\n> "


@pytest.mark.asyncio
async def test_interactive_requires_attachment():
    registry = WorkerRegistry()
    _, worker_transport = _add_worker(registry)
    session, operator = _session(registry)

    await session.handle_line(".interactive")
    assert operator.take_output().startswith("not attached")

    await session.handle_line(".attach 0")
    await session.handle_line(".interactive")
    assert bytes(worker_transport.written) == b"env DISPLAY=:0 bash\n"


@pytest.mark.asyncio
async def test_custom_marker_changes_meta_command_prefix():
    registry = WorkerRegistry()
    session, operator = _session(registry, settings=_settings(command_marker="!"))

    await session.handle_line("!enumerate")
    await session.handle_line(".enumerate")

    assert operator.output() == 'no workers connected\n> ".enumerate" is not a valid command\n> '


@pytest.mark.asyncio
async def test_run_greets_dispatches_and_cleans_up_on_disconnect():
    registry = WorkerRegistry()
    worker, worker_transport = _add_worker(registry)
    session, operator = _session(registry)
    operator.feed(".attach 0\nwhoami\n")
    operator.feed_eof()

    await session.run()

    assert operator.output().startswith("welcome\n> attached to 0")
    assert bytes(worker_transport.written) == b"whoami\n"
    assert session.closed
    assert worker.subscriber_count() == 0
    assert worker in registry


@pytest.mark.asyncio
async def test_colored_output_wraps_responses():
    session, operator = _session(WorkerRegistry(), settings=_settings(color=True))

    await session.handle_line(".enumerate")

    output = operator.output()
    assert "\x1b[" in output
    assert "no workers connected" in output


def test_missing_collaborators_are_configuration_errors():
    with pytest.raises(ConfigurationError):
        OperatorSession(transport=None, registry=WorkerRegistry(), settings=_settings())
    with pytest.raises(ConfigurationError):
        OperatorSession(transport=DummyTransport(), registry=None, settings=_settings())


class _StalledTransport(DummyTransport):
    async def drain(self) -> None:
        raise ConnectionLostError("worker stopped reading")


@pytest.mark.asyncio
async def test_lines_sent_to_worker_are_drained():
    registry = WorkerRegistry()
    _, worker_transport = _add_worker(registry)
    session, _ = _session(registry)
    await session.handle_line(".attach 0")
    assert worker_transport.drains == 0

    await session.handle_line("id")
    await session.handle_line(".interactive")
    await session.handle_line(".enumerate")

    assert worker_transport.drains == 2


@pytest.mark.asyncio
async def test_failed_worker_drain_keeps_session_attached():
    registry = WorkerRegistry()
    worker = WorkerConnection(transport=_StalledTransport(("10.0.0.5", 4444)))
    worker.set_identity("root")
    registry.register(worker)
    session, operator = _session(registry)
    await session.handle_line(".attach 0")
    operator.take_output()

    await session.handle_line("id")

    assert operator.output() == "root > "
    assert session.state is SessionState.ATTACHED


@pytest.mark.asyncio
async def test_overlong_line_is_streamed_to_attached_worker():
    registry = WorkerRegistry()
    _, worker_transport = _add_worker(registry)
    operator = DummyTransport(("127.0.0.1", 50000), line_limit=16)
    session = OperatorSession(transport=operator, registry=registry, settings=_settings())
    long_line = "echo " + "A" * 20
    operator.feed(f".attach 0\n{long_line}\nid\n")
    operator.feed_eof()

    await session.run()

    assert bytes(worker_transport.written) == f"{long_line}\nid\n".encode("utf-8")
    assert operator.output().count("root > ") == 3
    assert "line too long" not in operator.output()


@pytest.mark.asyncio
async def test_overlong_line_while_idle_is_dropped_with_one_error():
    operator = DummyTransport(("127.0.0.1", 50000), line_limit=16)
    session = OperatorSession(transport=operator, registry=WorkerRegistry(), settings=_settings())
    operator.feed("x" * 40 + "\n")
    operator.feed_eof()

    await session.run()

    assert operator.output() == "welcome\n> line too long: input dropped\n> "


@pytest.mark.asyncio
async def test_unterminated_last_line_is_still_handled():
    session, operator = _session(WorkerRegistry())
    operator.feed(".enumerate")
    operator.feed_eof()

    await session.run()

    assert operator.output() == "welcome\n> no workers connected\n> "
