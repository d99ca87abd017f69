"""Publish/subscribe stream for upload progress and status events."""

import logging
import threading
from typing import Any, Callable, List

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class EventStream:
    """Fan-out of upload events to any number of listeners.

    Listeners run on the publishing thread. A failing listener is logged and
    skipped; it never interrupts the upload.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Attach ``listener``; returns a callable that detaches it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: Any) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener error: {e}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
