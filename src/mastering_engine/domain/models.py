"""Domain models for reference matching and enhancement requests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping
from uuid import uuid4

from mastering_engine.analysis import SpectralProfile, StereoProfile
from mastering_engine.mastering_options import MediaType, Priority, QualityTarget
from mastering_engine.utils.config import EnhancementRequestSpec, validate_model


class JobStatus(str, Enum):
    """Lifecycle states of an enhancement request inside the scheduler."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class FailureReason(str, Enum):
    """Why an enhancement request ended in the failed state."""

    PROCESSING_ERROR = "processing_error"
    CANCELLED = "cancelled"
    DEADLINE_EXCEEDED = "deadline_exceeded"


@dataclass(frozen=True, slots=True)
class ReferenceTrack:
    """Target profile of a reference master; only its numbers are ever used."""

    id: str
    name: str
    genre: str
    lufs: float
    peak_dbfs: float
    dynamic_range_db: float
    spectral: SpectralProfile
    stereo: StereoProfile

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "genre": self.genre,
            "lufs": self.lufs,
            "peak_dbfs": self.peak_dbfs,
            "dynamic_range_db": self.dynamic_range_db,
            "spectral": self.spectral.as_dict(),
            "stereo": {
                "width": self.stereo.width,
                "correlation": self.stereo.correlation,
                "center_balance": self.stereo.center_balance,
                "mono_compatibility": self.stereo.mono_compatibility,
                "bass_mono_below_hz": self.stereo.bass_mono_below_hz,
            },
        }


@dataclass(frozen=True, slots=True)
class Requirement:
    """One engine operation requested as part of an enhancement request."""

    engine: str
    operation: str
    parameters: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    quality: int = 5
    real_time: bool = False


@dataclass(frozen=True, slots=True)
class EnhancementRequest:
    """Asynchronous processing request owned by the scheduler until it is terminal."""

    id: str
    client_id: str | None
    media_type: MediaType
    priority: Priority
    requirements: tuple[Requirement, ...]
    quality_target: QualityTarget
    deadline: datetime | None = None

    @classmethod
    def from_spec(cls, spec: EnhancementRequestSpec | Mapping[str, Any]) -> "EnhancementRequest":
        spec = validate_model(EnhancementRequestSpec, spec, code="invalid_request")
        return cls(
            id=spec.id or str(uuid4()),
            client_id=spec.client_id,
            media_type=spec.media_type,
            priority=spec.priority,
            requirements=tuple(
                Requirement(
                    engine=requirement.engine,
                    operation=requirement.operation,
                    parameters=MappingProxyType(dict(requirement.parameters)),
                    quality=requirement.quality,
                    real_time=requirement.real_time,
                )
                for requirement in spec.requirements
            ),
            quality_target=spec.quality_target,
            deadline=spec.deadline,
        )
