"""Single-writer snapshot store and bounded one-shot event queue."""

import logging
import queue
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StateStore(Generic[T]):
    """Holds the current immutable snapshot of some state and broadcasts changes.

    Only the owning component calls ``set``/``update``; any number of readers
    may call ``value`` or ``subscribe``. Subscribers run on the writer's thread,
    outside the value lock, in the order they subscribed. Notifications are
    serialized so every subscriber sees snapshots in the order they were made.
    """

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._lock = threading.Lock()
        # Reentrant so a subscriber may itself write to the store
        self._notify_lock = threading.RLock()
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        """The current snapshot."""
        with self._lock:
            return self._value

    def set(self, value: T) -> T:
        """Replace the snapshot and notify subscribers."""
        return self.update(lambda _: value)

    def update(self, transform: Callable[[T], T]) -> T:
        """Atomically derive the next snapshot from the current one.

        Args:
            transform: Pure function from the current snapshot to the next

        Returns:
            The new snapshot
        """
        with self._notify_lock:
            with self._lock:
                self._value = transform(self._value)
                value = self._value
                subscribers = list(self._subscribers)
            for subscriber in subscribers:
                try:
                    subscriber(value)
                except Exception:
                    logger.exception("State subscriber %r failed", subscriber)
        return value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register ``callback`` for future snapshots.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe


class EventQueue(Generic[T]):
    """Bounded queue of fire-once events; each event is delivered to one reader."""

    def __init__(self, maxsize: int = 16) -> None:
        self._queue: queue.Queue[T] = queue.Queue(maxsize=maxsize)

    def emit(self, event: T) -> bool:
        """Enqueue ``event``; returns False and drops it if the queue is full."""
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            logger.warning("Event queue full, dropping %r", event)
            return False
        return True

    def get(self, timeout: float | None = None) -> T | None:
        """Return the next event, or None if none arrives within ``timeout``."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[T]:
        """Return and remove every pending event."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events
