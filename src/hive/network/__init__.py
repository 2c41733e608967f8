"""Network primitives (transports, subscriptions) for hive connections."""

from hive.network.subscriptions import Subscribers, Subscription
from hive.network.transport import BaseTransport, DummyTransport, StreamTransport

__all__ = [
    "Subscribers",
    "Subscription",
    "BaseTransport",
    "DummyTransport",
    "StreamTransport",
]
