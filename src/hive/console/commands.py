"""Fixed table of operator meta-commands and completion over it."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class Command:
    name: str
    description: str
    args: str = ""
    aliases: tuple[str, ...] = ()

    @property
    def usage(self) -> str:
        return f"{self.name} {self.args}".strip()


COMMANDS: tuple[Command, ...] = (
    Command("help", "display this message"),
    Command("enumerate", "list connected workers"),
    Command("attach", "attach to a worker and forward its stream", args="<index>"),
    Command("detach", "detach from the attached worker"),
    Command("interactive", "spawn an interactive shell on the attached worker"),
    Command("uptime", "show hive uptime"),
    Command("about", "display info on the project"),
    Command("quit", "close your connection", aliases=("q",)),
    Command("shutdown", "tear down the whole hive"),
)


def complete(line: str, candidates: Sequence[str]) -> tuple[list[str], str]:
    """Return ``(matches, line)``; every candidate is returned when nothing matches."""

    hits = [candidate for candidate in candidates if candidate.startswith(line)]
    return (hits or list(candidates), line)


class CommandTable:
    """Marker-aware view over :data:`COMMANDS` used for dispatch, help and completion."""

    def __init__(self, commands: Sequence[Command] = COMMANDS, *, marker: str = ".") -> None:
        self._commands = tuple(commands)
        self._marker = marker
        self._by_name: dict[str, Command] = {}
        for command in self._commands:
            for name in (command.name, *command.aliases):
                if name in self._by_name:
                    raise ValueError(f"Duplicate command name {name!r}")
                self._by_name[name] = command

    @property
    def marker(self) -> str:
        return self._marker

    def __iter__(self):
        return iter(self._commands)

    def __len__(self) -> int:
        return len(self._commands)

    def is_command(self, line: str) -> bool:
        return line.startswith(self._marker)

    def parse(self, line: str) -> tuple[str, list[str]]:
        """Split ``.<command> [args...]`` into the command name and its arguments."""

        body = line[len(self._marker):] if self.is_command(line) else line
        parts = body.split()
        if not parts:
            return "", []
        return parts[0], parts[1:]

    def resolve(self, name: str) -> Optional[Command]:
        return self._by_name.get(name)

    def names(self) -> list[str]:
        return [f"{self._marker}{command.name}" for command in self._commands]

    def complete(self, line: str) -> tuple[list[str], str]:
        return complete(line, self.names())

    def suggestions(self, name: str) -> list[str]:
        prefix = f"{self._marker}{name}"
        hits, _ = self.complete(prefix)
        return [hit for hit in hits if name and hit.startswith(prefix)]

    def help_rows(self) -> list[str]:
        return [f"{self._marker}{command.usage}\t\t{command.description}" for command in self._commands]
