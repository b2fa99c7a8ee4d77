"""Domain services that contain pure business rules."""

from __future__ import annotations

import math

from mastering_engine.analysis import AnalysisResult
from mastering_engine.domain.models import EnhancementRequest
from mastering_engine.mastering_options import MediaType, Priority, QualityTarget

_BASE_PROCESSING_SECONDS = 30.0
_PER_REQUIREMENT_FACTOR = 0.5

QUALITY_MULTIPLIERS: dict[QualityTarget, float] = {
    QualityTarget.PROFESSIONAL: 1.0,
    QualityTarget.MASTERING: 2.5,
    QualityTarget.BROADCAST: 3.0,
    QualityTarget.CINEMA: 4.0,
}

PRIORITY_TIME_FACTORS: dict[Priority, float] = {
    Priority.CRITICAL: 0.5,
    Priority.HIGH: 0.7,
    Priority.NORMAL: 1.0,
    Priority.LOW: 1.0,
}

# Lower rank is dequeued first.
PRIORITY_RANKS: dict[Priority, int] = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.NORMAL: 2,
    Priority.LOW: 3,
}

_AUDIO_SCORE = 95
_VIDEO_SCORE = 93
_AI_SCORE = 96

# Collaboration sessions deliver audio stems, so they are scored as audio.
MEDIA_COMPONENT_SCORES: dict[MediaType, tuple[int, ...]] = {
    MediaType.AUDIO: (_AUDIO_SCORE,),
    MediaType.VIDEO: (_VIDEO_SCORE,),
    MediaType.MIXED_MEDIA: (_AUDIO_SCORE, _VIDEO_SCORE),
    MediaType.AI_GENERATION: (_AI_SCORE,),
    MediaType.COLLABORATION: (_AUDIO_SCORE,),
}

OUTPUT_FORMATS: dict[MediaType, str] = {
    MediaType.AUDIO: "wav",
    MediaType.VIDEO: "mov",
    MediaType.MIXED_MEDIA: "mov",
    MediaType.AI_GENERATION: "wav",
    MediaType.COLLABORATION: "prostudio",
}


def estimate_processing_time(request: EnhancementRequest) -> int:
    """Estimated processing time in whole seconds."""

    seconds = (
        _BASE_PROCESSING_SECONDS
        * QUALITY_MULTIPLIERS[request.quality_target]
        * len(request.requirements)
        * _PER_REQUIREMENT_FACTOR
        * PRIORITY_TIME_FACTORS[request.priority]
    )
    return int(math.ceil(seconds))


def quality_score(media_type: MediaType) -> int:
    components = MEDIA_COMPONENT_SCORES[media_type]
    return sum(components) // len(components)


def output_reference(request: EnhancementRequest) -> str:
    return f"enhanced/{request.id}_{request.quality_target.value}.{OUTPUT_FORMATS[request.media_type]}"


def improvement_metrics(before: AnalysisResult, after: AnalysisResult) -> dict[str, float]:
    """Measured before/after deltas of a processed buffer."""

    return {
        "loudness_change_lu": round(after.integrated_lufs - before.integrated_lufs, 3),
        "true_peak_change_db": round(after.true_peak_dbfs - before.true_peak_dbfs, 3),
        "dynamic_range_change_db": round(after.dynamic_range_db - before.dynamic_range_db, 3),
        "stereo_width_change": round(after.stereo.width - before.stereo.width, 4),
        "output_integrated_lufs": round(after.integrated_lufs, 3),
        "output_true_peak_dbfs": round(after.true_peak_dbfs, 3),
        "advisories_resolved": float(len(set(before.advisories) - set(after.advisories))),
    }
