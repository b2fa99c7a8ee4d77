"""Domain event contracts for mastering workflows."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """Base domain event emitted by application services."""

    correlation_id: str
    payload_summary: dict[str, Any]
    client_id: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


@dataclass(frozen=True, slots=True)
class AnalysisCompleted(DomainEvent):
    """A buffer was analyzed and its result cached."""


@dataclass(frozen=True, slots=True)
class ChainApplied(DomainEvent):
    """A mastering chain was applied to a buffer."""


@dataclass(frozen=True, slots=True)
class ReferenceMatched(DomainEvent):
    """A reference-matching chain was derived and applied."""


@dataclass(frozen=True, slots=True)
class ChainCreated(DomainEvent):
    """A custom chain was validated and registered."""


@dataclass(frozen=True, slots=True)
class JobQueued(DomainEvent):
    """An enhancement request entered the scheduler queue."""


@dataclass(frozen=True, slots=True)
class JobStarted(DomainEvent):
    """A worker began processing an enhancement request."""


@dataclass(frozen=True, slots=True)
class JobProgress(DomainEvent):
    """A processing sub-step finished."""


@dataclass(frozen=True, slots=True)
class JobCompleted(DomainEvent):
    """An enhancement request finished successfully."""


@dataclass(frozen=True, slots=True)
class JobFailed(DomainEvent):
    """An enhancement request ended without output."""


TERMINAL_EVENTS: tuple[type[DomainEvent], ...] = (JobCompleted, JobFailed)


def event_name(event: DomainEvent) -> str:
    return type(event).__name__


def event_to_dict(event: DomainEvent) -> dict[str, Any]:
    """JSON form handed to transports."""

    return {
        "event": event_name(event),
        "correlation_id": event.correlation_id,
        "client_id": event.client_id,
        "payload": event.payload_summary,
        "occurred_at": event.occurred_at.isoformat(),
    }
