"""Worker control plane: registry and worker-facing listener."""

from .listener import WorkerListener
from .registry import WorkerConnection, WorkerEntry, WorkerRegistry

__all__ = [
    "WorkerConnection",
    "WorkerEntry",
    "WorkerListener",
    "WorkerRegistry",
]
