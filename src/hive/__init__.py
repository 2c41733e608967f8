"""Two-tier TCP console: workers register on one listener, operators attach from another."""

from hive.config import HiveSettings, get_settings
from hive.console import CommandTable, OperatorListener, OperatorSession, SessionState
from hive.control_plane import WorkerConnection, WorkerEntry, WorkerListener, WorkerRegistry
from hive.errors import (
    ConfigurationError,
    ConnectionLostError,
    FatalCommand,
    HiveError,
    UserInputError,
    WorkerNotFoundError,
)
from hive.lifecycle import ShutdownSignal
from hive.server import HiveServer

__version__ = "0.1.0"

__all__ = [
    "CommandTable",
    "ConfigurationError",
    "ConnectionLostError",
    "FatalCommand",
    "HiveError",
    "HiveServer",
    "HiveSettings",
    "OperatorListener",
    "OperatorSession",
    "SessionState",
    "ShutdownSignal",
    "UserInputError",
    "WorkerConnection",
    "WorkerEntry",
    "WorkerListener",
    "WorkerNotFoundError",
    "WorkerRegistry",
    "get_settings",
]
