"""Public package exports for the mastering engine with lazy imports."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "AudioBuffer",
    "AnalysisResult",
    "analyze",
    "generate_suggestions",
    "MasteringChain",
    "Module",
    "PRESETS",
    "MasteringEngine",
    "MasteringRun",
    "EnhancementRequest",
    "ReferenceTrack",
    "MasteringError",
    "ValidationError",
    "ProcessingError",
    "load_audio_file",
    "write_audio_file",
]

_EXPORT_MODULES: dict[str, str] = {
    "AudioBuffer": "mastering_engine.audio_contract",
    "AnalysisResult": "mastering_engine.analysis",
    "analyze": "mastering_engine.analysis",
    "generate_suggestions": "mastering_engine.analysis",
    "MasteringChain": "mastering_engine.chain",
    "Module": "mastering_engine.chain",
    "PRESETS": "mastering_engine.presets",
    "MasteringEngine": "mastering_engine.application.mastering_service",
    "MasteringRun": "mastering_engine.application.mastering_service",
    "EnhancementRequest": "mastering_engine.domain.models",
    "ReferenceTrack": "mastering_engine.domain.models",
    "MasteringError": "mastering_engine.errors",
    "ValidationError": "mastering_engine.errors",
    "ProcessingError": "mastering_engine.errors",
    "load_audio_file": "mastering_engine.infrastructure.pedalboard_codec",
    "write_audio_file": "mastering_engine.infrastructure.pedalboard_codec",
}


def __getattr__(name: str) -> Any:
    if name not in _EXPORT_MODULES:
        raise AttributeError(f"module 'mastering_engine' has no attribute {name!r}")

    module = import_module(_EXPORT_MODULES[name])
    value = getattr(module, name)
    globals()[name] = value
    return value
