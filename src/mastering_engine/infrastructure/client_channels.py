"""Per-client event delivery through an injected transport callback."""

from __future__ import annotations

import threading
from typing import Any, Callable

from mastering_engine.domain.events import DomainEvent, event_to_dict

EmitFn = Callable[[str, dict[str, Any]], None]


class ClientRegistry:
    """Connected client ids; transports register and unregister connections here."""

    def __init__(self) -> None:
        self._clients: set[str] = set()
        self._lock = threading.Lock()

    def connect(self, client_id: str) -> None:
        with self._lock:
            self._clients.add(client_id)

    def disconnect(self, client_id: str) -> None:
        with self._lock:
            self._clients.discard(client_id)

    def is_connected(self, client_id: str | None) -> bool:
        if client_id is None:
            return False
        with self._lock:
            return client_id in self._clients

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)


class ClientChannelPublisher:
    """Forward events to their client's channel; events for absent clients are dropped."""

    def __init__(self, clients: ClientRegistry, emit: EmitFn) -> None:
        self.clients = clients
        self.emit = emit

    def publish(self, event: DomainEvent) -> None:
        if not self.clients.is_connected(event.client_id):
            return
        self.emit(event.client_id, event_to_dict(event))
