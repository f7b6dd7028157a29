"""Notification bus for the display layer.

Subscribers are called after each committed mutation. Delivery is
fire-and-forget: a failing or slow subscriber never affects the caller.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from divtrack.config.logging import get_logger

logger = get_logger()

# Channels
SESSION_STATE_CHANGED = "session:state-changed"
SESSION_DATA_UPDATED = "session:data-updated"
SNAPSHOT_CREATED = "snapshot:created"
SNAPSHOT_REUSED = "snapshot:reused"
AUTO_REFRESH_STARTED = "snapshot:auto-refresh-started"
AUTO_REFRESH_STOPPED = "snapshot:auto-refresh-stopped"

Subscriber = Callable[[dict], Any]


class EventBus:
    """Observer list keyed by channel name."""

    def __init__(self, synchronous: bool = False) -> None:
        """
        Args:
            synchronous: Deliver on the publishing thread (used by tests).
                Otherwise events are handed to a single worker thread so
                delivery order is preserved.
        """
        self._subscribers: dict[str, list[Subscriber]] = {}
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        if not synchronous:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="divtrack-events"
            )

    def subscribe(self, channel: str, callback: Subscriber) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.setdefault(channel, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(channel, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def has_subscribers(self, channel: str) -> bool:
        with self._lock:
            return bool(self._subscribers.get(channel))

    def publish(self, channel: str, payload: dict) -> None:
        """Deliver payload to every subscriber of channel."""
        with self._lock:
            callbacks = list(self._subscribers.get(channel, []))
        if not callbacks:
            return

        if self._executor is None:
            self._deliver(channel, callbacks, payload)
        else:
            self._executor.submit(self._deliver, channel, callbacks, payload)

    def close(self) -> None:
        """Stop the delivery thread after pending events drain."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    @staticmethod
    def _deliver(channel: str, callbacks: list[Subscriber], payload: dict) -> None:
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                logger.exception(f"Event subscriber failed on {channel}")
