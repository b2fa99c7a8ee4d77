"""Reference matching: derive a mastering chain that moves a source toward a reference."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable
from uuid import uuid4

import numpy as np

from .analysis import AnalysisResult, SpectralProfile, StereoProfile
from .chain import MasteringChain, Module
from .domain.models import ReferenceTrack
from .errors import ValidationError
from .mastering_options import ModuleKind
from .processor.eq import BAND_GAIN_KEYS

MAX_EQ_GAIN_DB = 12.0
MAX_MAKEUP_GAIN_DB = 24.0
MAX_WIDTH_MULTIPLIER = 2.0
CEILING_HEADROOM_DB = 0.1
THRESHOLD_BELOW_PEAK_DB = 1.0
DYNAMIC_RANGE_BAND_DB = 2.0
_ENERGY_FLOOR = 1e-6
_DEFAULT_LOW_CROSSOVER_HZ = 200.0
_DEFAULT_HIGH_CROSSOVER_HZ = 2_000.0


@dataclass(frozen=True, slots=True)
class CompressionTuning:
    """Per-band multiband settings for one side of the binary compression policy."""

    low_threshold_db: float
    low_ratio: float
    mid_threshold_db: float
    mid_ratio: float
    high_threshold_db: float
    high_ratio: float

    def as_parameters(self) -> dict[str, float]:
        return {
            "low_threshold_db": self.low_threshold_db,
            "low_ratio": self.low_ratio,
            "mid_threshold_db": self.mid_threshold_db,
            "mid_ratio": self.mid_ratio,
            "high_threshold_db": self.high_threshold_db,
            "high_ratio": self.high_ratio,
        }


COMPRESSION_TUNINGS: dict[str, CompressionTuning] = {
    "tight": CompressionTuning(-20.0, 3.0, -16.0, 4.0, -12.0, 2.5),
    "gentle": CompressionTuning(-30.0, 1.5, -24.0, 2.0, -20.0, 1.3),
}


def eq_matching(current: SpectralProfile, target: SpectralProfile) -> dict[str, float]:
    """Per-band gain that moves current band energy onto the target, clamped to +/-12 dB."""

    current_bands = current.as_dict()
    target_bands = target.as_dict()
    parameters: dict[str, float] = {}
    for band, key in BAND_GAIN_KEYS.items():
        ratio = max(target_bands[band], _ENERGY_FLOOR) / max(current_bands[band], _ENERGY_FLOOR)
        parameters[key] = float(np.clip(10.0 * np.log10(ratio), -MAX_EQ_GAIN_DB, MAX_EQ_GAIN_DB))
    return parameters


def compression_matching(current_dynamic_range_db: float, target_dynamic_range_db: float) -> dict[str, float]:
    """Tight settings when the source is more dynamic than the target, gentle otherwise."""

    policy = "tight" if current_dynamic_range_db > target_dynamic_range_db else "gentle"
    return COMPRESSION_TUNINGS[policy].as_parameters()


def stereo_matching(current: StereoProfile, target: StereoProfile) -> dict[str, float]:
    """Per-band width multipliers that move the source width toward the target."""

    if current.width <= 0.0:
        multiplier = 1.0
    else:
        multiplier = float(np.clip(target.width / current.width, 0.0, MAX_WIDTH_MULTIPLIER))

    low_crossover = target.bass_mono_below_hz if target.bass_mono_below_hz > 0.0 else _DEFAULT_LOW_CROSSOVER_HZ
    return {
        "low_crossover_hz": float(low_crossover),
        "high_crossover_hz": _DEFAULT_HIGH_CROSSOVER_HZ,
        "low_width": min(1.0, multiplier),
        "mid_width": multiplier,
        "high_width": multiplier,
    }


def limiter_matching(current_lufs: float, target_lufs: float, target_peak_dbfs: float) -> dict[str, float]:
    gain_adjustment = float(np.clip(target_lufs - current_lufs, -MAX_MAKEUP_GAIN_DB, MAX_MAKEUP_GAIN_DB))
    return {
        "input_gain_db": gain_adjustment,
        "threshold_db": target_peak_dbfs - THRESHOLD_BELOW_PEAK_DB,
        "ceiling_db": target_peak_dbfs - CEILING_HEADROOM_DB,
        "release_ms": 5.0,
        "lookahead_ms": 10.0,
    }


def match_reference(analysis: AnalysisResult, reference: ReferenceTrack) -> MasteringChain:
    """Derive an EQ -> multiband -> imager -> maximizer chain toward ``reference``."""

    dynamic_range = reference.dynamic_range_db
    return MasteringChain(
        id=f"reference_match_{uuid4().hex}",
        name=f"Match {reference.name}",
        preset="reference_matching",
        modules=(
            Module.create(
                ModuleKind.LINEAR_PHASE_EQ,
                1,
                eq_matching(analysis.spectral, reference.spectral),
                module_id="matching_eq",
            ),
            Module.create(
                ModuleKind.MULTIBAND_COMPRESSOR,
                2,
                compression_matching(analysis.dynamic_range_db, dynamic_range),
                module_id="matching_comp",
            ),
            Module.create(
                ModuleKind.STEREO_IMAGER,
                3,
                stereo_matching(analysis.stereo, reference.stereo),
                module_id="matching_stereo",
            ),
            Module.create(
                ModuleKind.MAXIMIZER,
                4,
                limiter_matching(analysis.integrated_lufs, reference.lufs, reference.peak_dbfs),
                module_id="matching_limiter",
            ),
        ),
        target_loudness_lufs=reference.lufs,
        dynamic_range=(max(0.0, dynamic_range - DYNAMIC_RANGE_BAND_DB), dynamic_range + DYNAMIC_RANGE_BAND_DB),
        spectral_target=reference.spectral,
        stereo_target=reference.stereo,
        loudness_targeting=False,
    )


def reference_from_analysis(
    analysis: AnalysisResult, reference_id: str, name: str, genre: str = "custom"
) -> ReferenceTrack:
    """Capture an analyzed buffer as a reference target."""

    return ReferenceTrack(
        id=reference_id,
        name=name,
        genre=genre,
        lufs=analysis.integrated_lufs,
        peak_dbfs=analysis.true_peak_dbfs,
        dynamic_range_db=analysis.dynamic_range_db,
        spectral=analysis.spectral,
        stereo=analysis.stereo,
    )


DEFAULT_REFERENCES: tuple[ReferenceTrack, ...] = (
    ReferenceTrack(
        id="commercial_pop",
        name="Commercial Pop Reference",
        genre="Pop",
        lufs=-9.2,
        peak_dbfs=-0.1,
        dynamic_range_db=6.8,
        spectral=SpectralProfile(0.7, 1.0, 0.9, 1.0, 1.1, 1.3, 1.1),
        stereo=StereoProfile(width=0.48, correlation=0.8, mono_compatibility=0.9, bass_mono_below_hz=120.0),
    ),
    ReferenceTrack(
        id="electronic_dance",
        name="Electronic Dance Reference",
        genre="Electronic",
        lufs=-7.5,
        peak_dbfs=-0.1,
        dynamic_range_db=4.2,
        spectral=SpectralProfile(1.2, 1.1, 0.8, 0.9, 1.0, 1.2, 1.3),
        stereo=StereoProfile(width=0.56, correlation=0.7, mono_compatibility=0.85, bass_mono_below_hz=250.0),
    ),
    ReferenceTrack(
        id="classical_orchestral",
        name="Classical Orchestral Reference",
        genre="Classical",
        lufs=-18.5,
        peak_dbfs=-3.2,
        dynamic_range_db=18.7,
        spectral=SpectralProfile(0.8, 0.9, 1.0, 1.0, 1.0, 0.9, 1.0),
        stereo=StereoProfile(width=0.72, correlation=0.95, mono_compatibility=0.8, bass_mono_below_hz=60.0),
    ),
    ReferenceTrack(
        id="broadcast_speech",
        name="Broadcast Speech Reference",
        genre="Speech",
        lufs=-23.0,
        peak_dbfs=-1.0,
        dynamic_range_db=12.0,
        spectral=SpectralProfile(0.5, 0.9, 1.0, 1.2, 1.1, 1.1, 0.8),
        stereo=StereoProfile(width=0.1, correlation=0.95, mono_compatibility=0.98, bass_mono_below_hz=250.0),
    ),
)


class ReferenceLibrary:
    """Read-only collection of reference tracks."""

    def __init__(self, references: Iterable[ReferenceTrack] = DEFAULT_REFERENCES) -> None:
        self._references: dict[str, ReferenceTrack] = {reference.id: reference for reference in references}

    def get(self, reference_id: str) -> ReferenceTrack:
        try:
            return self._references[reference_id]
        except KeyError:
            raise ValidationError("unknown_reference", f"Reference track '{reference_id}' not found.") from None

    def __contains__(self, reference_id: object) -> bool:
        return reference_id in self._references

    def list(self) -> list[ReferenceTrack]:
        return list(self._references.values())
