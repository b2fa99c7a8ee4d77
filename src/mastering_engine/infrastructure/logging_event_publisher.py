"""Simple logging-backed implementation of the event publisher."""

from __future__ import annotations

import logging

from mastering_engine.domain.events import DomainEvent, event_name

LOGGER = logging.getLogger("mastering_engine.events")


class LoggingEventPublisher:
    """Emit event payload summaries to structured logs."""

    def publish(self, event: DomainEvent) -> None:
        LOGGER.info(
            "domain_event_emitted",
            extra={
                "event_name": event_name(event),
                "correlation_id": event.correlation_id,
                "client_id": event.client_id,
                "payload_summary": event.payload_summary,
                "occurred_at": event.occurred_at.isoformat(),
            },
        )
