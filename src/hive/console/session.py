"""Operator session: line dispatch and the attach/detach state machine."""

from __future__ import annotations

import enum
import logging
import time
from typing import Callable, Optional

from hive.config import HiveSettings, get_settings
from hive.control_plane.registry import WorkerConnection, WorkerRegistry
from hive.errors import ConfigurationError, ConnectionLostError, UserInputError, WorkerNotFoundError
from hive.lifecycle import PROCESS_STARTED, ShutdownSignal
from hive.network.subscriptions import Subscription
from hive.network.transport.base import BaseTransport

from .commands import CommandTable
from .durations import humanize_duration
from .formatting import Color, paint

LOGGER = logging.getLogger(__name__)


class SessionState(enum.Enum):
    """Operator-side attachment state."""

    IDLE = "IDLE"
    ATTACHED = "ATTACHED"
    CLOSED = "CLOSED"


class OperatorSession:
    """One operator connection, attached to at most one worker at a time.

    Every way out of the attached state (``.detach``, the worker hanging up, the
    operator leaving) goes through :meth:`_release_attachment`, which cancels the
    forwarding subscriptions before the attachment is dropped. Cancellation is
    synchronous, so no worker chunk is delivered once the session left
    :attr:`SessionState.ATTACHED`.
    """

    def __init__(
        self,
        *,
        transport: BaseTransport,
        registry: WorkerRegistry,
        settings: Optional[HiveSettings] = None,
        commands: Optional[CommandTable] = None,
        shutdown: Optional[ShutdownSignal] = None,
        started_at: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if transport is None:
            raise ConfigurationError("OperatorSession requires a transport")
        if registry is None:
            raise ConfigurationError("OperatorSession requires a WorkerRegistry")
        self._transport = transport
        self._registry = registry
        self._settings = settings or get_settings()
        self._commands = commands or CommandTable(marker=self._settings.command_marker)
        self._shutdown = shutdown or ShutdownSignal()
        self._started_at = PROCESS_STARTED if started_at is None else started_at
        self._clock = clock

        self._state = SessionState.IDLE
        self._prompt = self._settings.prompt
        self._attached: Optional[WorkerConnection] = None
        self._subscriptions: list[Subscription] = []
        self._quit_requested = False
        self._unflushed: Optional[WorkerConnection] = None
        self._overflowing = False
        self._overflow_target: Optional[WorkerConnection] = None
        self._handlers: dict[str, Callable[[list[str]], None]] = {
            "help": self._cmd_help,
            "enumerate": self._cmd_enumerate,
            "attach": self._cmd_attach,
            "detach": self._cmd_detach,
            "interactive": self._cmd_interactive,
            "uptime": self._cmd_uptime,
            "about": self._cmd_about,
            "quit": self._cmd_quit,
            "shutdown": self._cmd_shutdown,
        }

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def prompt(self) -> str:
        return self._prompt

    @property
    def attached(self) -> Optional[WorkerConnection]:
        return self._attached

    @property
    def closed(self) -> bool:
        return self._state is SessionState.CLOSED

    @property
    def peer(self) -> tuple[str, int]:
        return self._transport.peer

    # ------------------------------------------------------------------ lifecycle

    def welcome(self) -> None:
        self._respond(self._settings.welcome_message, "yellow")
        self.show_prompt()

    def show_prompt(self) -> None:
        if self.closed:
            return
        self._transport.write(paint(self._prompt, "grey", enabled=self._settings.color).encode("utf-8"))

    async def run(self) -> None:
        """Greet the operator and dispatch inbound lines until the connection ends."""

        self.welcome()
        held = b""
        try:
            await self._transport.drain()
            while not self.closed:
                raw = await self._transport.readline()
                if not raw:
                    if held:
                        # unterminated input at EOF is a final line
                        await self.handle_input(held + b"\n")
                    break
                if held:
                    await self.handle_input(held)
                    held = b""
                if raw.endswith(b"\n"):
                    await self.handle_input(raw)
                else:
                    held = raw
        except ConnectionLostError as exc:
            LOGGER.info("Operator %s:%s connection lost: %s", *self.peer, exc)
        finally:
            await self.close()

    async def handle_input(self, raw: bytes) -> None:
        """Dispatch one piece read from the transport; pieces of an overlong line are streamed."""

        if not self._overflowing and raw.endswith(b"\n"):
            await self.handle_line(raw.decode("utf-8", errors="replace"))
            return
        await self._handle_overflow(raw)

    async def handle_line(self, line: str) -> None:
        """Process one inbound line, then reissue the prompt exactly once."""

        try:
            self.execute(line)
        except UserInputError as exc:
            self._respond(str(exc), "red")
        await self._flush_worker()
        if self._quit_requested:
            await self.close()
            return
        self.show_prompt()
        await self._transport.drain()

    async def close(self) -> None:
        """Terminate the session; attachment cleanup happens before the transport closes."""

        if self.closed:
            return
        worker = self._release_attachment()
        self._state = SessionState.CLOSED
        if worker is not None:
            LOGGER.info("Operator %s:%s left worker %s", *self.peer, worker.display_name)
        await self._transport.close()

    # ------------------------------------------------------------------ dispatch

    def execute(self, line: str) -> None:
        if self.closed:
            return
        text = line.rstrip("\r\n")
        stripped = text.strip()
        if self._commands.is_command(stripped):
            name, args = self._commands.parse(stripped)
            command = self._commands.resolve(name)
            if command is None:
                raise UserInputError(self._unknown_command_message(name))
            self._handlers[command.name](args)
            return
        if self._attached is not None:
            self._send_to_worker(self._attached, f"{text}\n".encode("utf-8"))
            return
        if stripped:
            raise UserInputError(f'"{stripped}" is not a valid command')

    async def _handle_overflow(self, piece: bytes) -> None:
        if self.closed:
            return
        if not self._overflowing:
            self._overflowing = True
            starts_command = self._commands.is_command(piece.decode("utf-8", errors="replace").strip())
            self._overflow_target = None if starts_command else self._attached
        complete = piece.endswith(b"\n")
        worker = self._overflow_target
        if worker is not None and worker is self._attached:
            self._send_to_worker(worker, piece.rstrip(b"\r\n") + b"\n" if complete else piece)
            await self._flush_worker()
        if not complete:
            return
        self._overflowing = False
        self._overflow_target = None
        if worker is None:
            self._respond("line too long: input dropped", "red")
        self.show_prompt()
        await self._transport.drain()

    def _send_to_worker(self, worker: WorkerConnection, data: bytes) -> None:
        worker.write(data)
        self._unflushed = worker

    async def _flush_worker(self) -> None:
        worker, self._unflushed = self._unflushed, None
        if worker is None:
            return
        try:
            await worker.drain()
        except ConnectionLostError as exc:
            LOGGER.info("Write to worker %s failed: %s", worker.display_name, exc)

    def _unknown_command_message(self, name: str) -> str:
        message = f"unknown command: {self._commands.marker}{name}"
        suggestions = self._commands.suggestions(name)
        if suggestions:
            message += f" (did you mean {', '.join(suggestions)}?)"
        return message

    # ------------------------------------------------------------------ attachment

    def attach(self, index: Optional[str]) -> WorkerConnection:
        if index is None or not str(index).strip():
            raise UserInputError(f"index required: usage {self._commands.marker}attach <index>")
        try:
            worker = self._registry.lookup_by_index(index)
        except WorkerNotFoundError:
            raise UserInputError(f"worker not found: no worker with index {index}") from None
        if self._attached is not None:
            raise UserInputError(
                f"must detach first: already attached to {self._attached.display_name}"
            )
        try:
            close_subscription = worker.on_close(self._on_worker_closed)
        except ConnectionLostError:
            raise UserInputError(f"worker not found: no worker with index {index}") from None

        self._attached = worker
        self._subscriptions = [close_subscription]
        self._state = SessionState.ATTACHED
        self._prompt = f"{worker.display_name} > "
        self._respond(f"attached to {index} on {worker.address}:{worker.port}", "yellow")
        LOGGER.info("Operator %s:%s attached to worker %s", *self.peer, worker.display_name)
        self._subscriptions.append(worker.on_data(self._forward_to_operator))
        return worker

    def detach(self) -> None:
        worker = self._release_attachment()
        if worker is None:
            return
        self._respond(f"detached from {worker.display_name}", "yellow")
        LOGGER.info("Operator %s:%s left worker %s", *self.peer, worker.display_name)

    def _release_attachment(self) -> Optional[WorkerConnection]:
        worker = self._attached
        if worker is None:
            return None
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
        self._attached = None
        self._state = SessionState.IDLE
        self._prompt = self._settings.prompt
        return worker

    def _forward_to_operator(self, chunk: bytes) -> None:
        self._transport.write(chunk)

    def _on_worker_closed(self, worker: WorkerConnection) -> None:
        if worker is not self._attached:
            return
        self._release_attachment()
        LOGGER.info("Worker %s disconnected while operator %s:%s was attached", worker.display_name, *self.peer)
        self._respond(f"[connection closed with {worker.display_name}]", "red")
        self.show_prompt()

    # ------------------------------------------------------------------ commands

    def _cmd_help(self, args: list[str]) -> None:
        self._respond("\n".join(self._commands.help_rows()), "grey")

    def _cmd_enumerate(self, args: list[str]) -> None:
        rows = [entry.render() for entry in self._registry.enumerate()]
        if not rows:
            self._respond("no workers connected", "grey")
            return
        self._respond("\n".join(rows), "green")

    def _cmd_attach(self, args: list[str]) -> None:
        self.attach(args[0] if args else None)

    def _cmd_detach(self, args: list[str]) -> None:
        self.detach()

    def _cmd_interactive(self, args: list[str]) -> None:
        if self._attached is None:
            raise UserInputError(f"not attached: use {self._commands.marker}attach <index> first")
        self._send_to_worker(self._attached, f"{self._settings.interactive_command}\n".encode("utf-8"))

    def _cmd_uptime(self, args: list[str]) -> None:
        self._respond(humanize_duration(self._clock() - self._started_at), "green")

    def _cmd_about(self, args: list[str]) -> None:
        self._respond(self._settings.about_text, "green")

    def _cmd_quit(self, args: list[str]) -> None:
        self._respond("Bye!", "green")
        self._quit_requested = True
        LOGGER.info("Operator %s:%s quit", *self.peer)

    def _cmd_shutdown(self, args: list[str]) -> None:
        self._respond("Tearing down the hive...", "red")
        self._shutdown.request(f"requested by operator {self.peer[0]}:{self.peer[1]}")

    def _respond(self, text: str, color: Color) -> None:
        self._transport.write(f"{paint(text, color, enabled=self._settings.color)}\n".encode("utf-8"))
