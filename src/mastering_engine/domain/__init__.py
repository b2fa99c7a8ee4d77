"""DDD domain layer."""

from .events import (
    AnalysisCompleted,
    ChainApplied,
    ChainCreated,
    DomainEvent,
    JobCompleted,
    JobFailed,
    JobProgress,
    JobQueued,
    JobStarted,
    ReferenceMatched,
    event_to_dict,
)
from .models import EnhancementRequest, FailureReason, JobStatus, ReferenceTrack, Requirement
from .services import estimate_processing_time, improvement_metrics, output_reference, quality_score

__all__ = [
    "DomainEvent",
    "AnalysisCompleted",
    "ChainApplied",
    "ChainCreated",
    "ReferenceMatched",
    "JobQueued",
    "JobStarted",
    "JobProgress",
    "JobCompleted",
    "JobFailed",
    "event_to_dict",
    "EnhancementRequest",
    "FailureReason",
    "JobStatus",
    "ReferenceTrack",
    "Requirement",
    "estimate_processing_time",
    "improvement_metrics",
    "output_reference",
    "quality_score",
]
