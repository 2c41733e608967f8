"""Transports for hive connections."""

from .base import BaseTransport
from .dummy import DummyTransport
from .stream import StreamTransport

__all__ = ["BaseTransport", "DummyTransport", "StreamTransport"]
