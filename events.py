"""Observer lists for core notifications.

Subscribers get an unsubscribe handle back. Delivery works on a snapshot of
the subscriber list, so unsubscribing from inside a callback is safe.
"""

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class _Subscription:
    __slots__ = ("callback",)

    def __init__(self, callback: Callable):
        self.callback = callback


class EventChannel:
    """A named list of callbacks fired with the same arguments."""

    def __init__(self, name: str):
        self.name = name
        self._subscriptions: list[_Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable) -> Callable[[], None]:
        """Register ``callback`` and return a function that removes it.

        The same callable may be subscribed twice; each handle only
        removes its own registration. Calling a handle more than once is
        a no-op.
        """
        if not callable(callback):
            raise TypeError(f"{self.name} subscriber must be callable")

        subscription = _Subscription(callback)
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._subscriptions.remove(subscription)
                except ValueError:
                    pass

        return unsubscribe

    def emit(self, *args) -> int:
        """Call every current subscriber once. Returns how many were called.

        A subscriber that raises is logged and skipped.
        """
        with self._lock:
            snapshot = list(self._subscriptions)

        delivered = 0
        for subscription in snapshot:
            with self._lock:
                if subscription not in self._subscriptions:
                    continue
            try:
                subscription.callback(*args)
            except Exception:
                logger.exception(f"[EVENTS] {self.name} subscriber failed")
            delivered += 1
        return delivered

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)
