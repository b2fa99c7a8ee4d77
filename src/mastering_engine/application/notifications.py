"""Ordered hand-off of events from workers to publishers."""

from __future__ import annotations

import logging
import queue
import threading

from mastering_engine.application.event_publisher import EventPublisher
from mastering_engine.domain.events import DomainEvent

LOGGER = logging.getLogger("mastering_engine.dispatcher")

_STOP = object()


class NotificationDispatcher:
    """Single consumer thread draining a FIFO of events into a publisher.

    Producers never call the publisher directly, so events of one request reach
    it in the order they were submitted. Without ``start()`` events are
    published synchronously on the caller's thread.
    """

    def __init__(self, publisher: EventPublisher) -> None:
        self.publisher = publisher
        self._queue: queue.Queue[object] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._thread = threading.Thread(
                target=self._run, name="mastering-engine-dispatcher", daemon=True
            )
            self._thread.start()

    def submit(self, event: DomainEvent) -> None:
        if self.running:
            self._queue.put(event)
            return
        self._deliver(event)

    def flush(self, timeout: float | None = None) -> None:
        """Block until every event submitted so far has been delivered."""

        if not self.running:
            return
        done = threading.Event()
        self._queue.put(done)
        done.wait(timeout)

    def stop(self, timeout: float | None = None) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._queue.put(_STOP)
        thread.join(timeout)
        with self._lock:
            self._thread = None

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            if isinstance(item, threading.Event):
                item.set()
                continue
            self._deliver(item)

    def _deliver(self, event: DomainEvent) -> None:
        try:
            self.publisher.publish(event)
        except Exception:
            LOGGER.exception(
                "event_delivery_failed",
                extra={"event_name": type(event).__name__, "correlation_id": event.correlation_id},
            )
