"""Operator console: command table, sessions and the operator-facing listener."""

from .commands import COMMANDS, Command, CommandTable, complete
from .listener import OperatorListener
from .session import OperatorSession, SessionState

__all__ = [
    "COMMANDS",
    "Command",
    "CommandTable",
    "complete",
    "OperatorListener",
    "OperatorSession",
    "SessionState",
]
