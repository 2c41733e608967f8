"""Error hierarchy shared by the hive listeners and operator sessions."""

from __future__ import annotations


class HiveError(Exception):
    """Base class for hive errors."""


class ConfigurationError(HiveError):
    """Raised when a required collaborator or listener address is unusable."""


class UserInputError(HiveError):
    """Raised for malformed operator commands; reported back to the operator."""


class WorkerNotFoundError(HiveError, LookupError):
    """Raised when a registry index does not resolve to a connected worker."""


class ConnectionLostError(HiveError):
    """Raised when a worker or operator transport closes unexpectedly."""


class FatalCommand(HiveError):
    """Raised to the hosting process once an operator requested shutdown."""

    def __init__(self, message: str = "shutdown requested", *, exit_code: int = 0) -> None:
        super().__init__(message)
        self.exit_code = exit_code


__all__ = [
    "HiveError",
    "ConfigurationError",
    "UserInputError",
    "WorkerNotFoundError",
    "ConnectionLostError",
    "FatalCommand",
]
