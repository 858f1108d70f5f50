"""
Observer channel used for stress, mode and level-down notifications.

Emissions made while a dispatch is already running are queued and delivered
after the current one finishes, so a subscriber that triggers another
notification never re-enters the channel.
"""

import logging
from collections import deque
from typing import Callable, Deque, Generic, List, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Observable(Generic[T]):
    """A typed notification channel with FIFO delivery."""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Callable[[T], None]] = []
        self._pending: Deque[T] = deque()
        self._dispatching = False

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def emit(self, value: T):
        """Deliver `value` to every subscriber."""
        self._pending.append(value)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._pending:
                item = self._pending.popleft()
                for callback in list(self._subscribers):
                    try:
                        callback(item)
                    except Exception:
                        logger.exception(f"Subscriber error on '{self.name}' channel")
        finally:
            self._dispatching = False


class MultiArgObservable(Observable[Tuple]):
    """Channel whose subscribers take positional arguments, e.g. (mode, level)."""

    def subscribe(self, callback: Callable[..., None]) -> Callable[[], None]:
        return super().subscribe(lambda args: callback(*args))
