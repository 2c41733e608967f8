"""Explicit subscription handles for per-connection event callbacks."""

from __future__ import annotations

import logging
from typing import Callable, Generic, List, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription(Generic[T]):
    """Handle returned by :meth:`Subscribers.subscribe`; cancelling it is idempotent."""

    __slots__ = ("_owner", "_callback", "_active")

    def __init__(self, owner: "Subscribers[T]", callback: Callable[[T], None]) -> None:
        self._owner = owner
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> bool:
        """Detach the callback. Returns ``True`` only on the call that removed it."""

        if not self._active:
            return False
        self._active = False
        self._owner._discard(self)
        return True

    def deliver(self, value: T) -> None:
        if self._active:
            self._callback(value)


class Subscribers(Generic[T]):
    """Ordered set of synchronous callbacks for one event kind."""

    def __init__(self, name: str = "event") -> None:
        self._name = name
        self._subscriptions: List[Subscription[T]] = []

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __bool__(self) -> bool:
        return bool(self._subscriptions)

    def subscribe(self, callback: Callable[[T], None]) -> Subscription[T]:
        subscription = Subscription(self, callback)
        self._subscriptions.append(subscription)
        return subscription

    def publish(self, value: T) -> None:
        # Callbacks may cancel other subscriptions; each one is re-checked before delivery.
        for subscription in list(self._subscriptions):
            try:
                subscription.deliver(value)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Subscriber for %s failed", self._name)

    def cancel_all(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.cancel()

    def _discard(self, subscription: Subscription[T]) -> None:
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            pass
