"""Audio analysis primitives for mastering decisions."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any
from uuid import uuid4

import numpy as np

from .audio_contract import AudioBuffer
from .loudness import (
    LOUDNESS_FLOOR_LUFS,
    measure_dynamic_range_db,
    measure_loudness,
    measure_true_peak_dbfs,
)

BAND_EDGES_HZ: dict[str, tuple[float, float]] = {
    "sub_bass": (20.0, 60.0),
    "bass": (60.0, 250.0),
    "low_mid": (250.0, 500.0),
    "midrange": (500.0, 2_000.0),
    "high_mid": (2_000.0, 4_000.0),
    "presence": (4_000.0, 8_000.0),
    "brilliance": (8_000.0, 20_000.0),
}
_MAX_WIDTH = 10.0
_BASS_MONO_CANDIDATES_HZ = (60.0, 120.0, 250.0, 500.0)
_BASS_MONO_SIDE_RATIO = 0.01
_PHASE_DOMINANT_BANDS = 3
_PHASE_LIMIT_RAD = np.pi / 2.0
_SILENCE_ENERGY = 1e-12

_TOO_LOUD_LUFS = -6.0
_TOO_QUIET_LUFS = -25.0
_NARROW_DYNAMICS_DB = 4.0
_WIDE_DYNAMICS_DB = 20.0
_TRUE_PEAK_CEILING_DBFS = -0.1
_BASS_DEFICIENT = 0.7
_PRESENCE_DEFICIENT = 0.8
_LOW_CORRELATION = 0.5
_POOR_MONO_COMPATIBILITY = 0.8


@dataclass(frozen=True, slots=True)
class SpectralProfile:
    """Per-band energy density relative to the band average (flat spectrum ~ 1.0)."""

    sub_bass: float = 1.0
    bass: float = 1.0
    low_mid: float = 1.0
    midrange: float = 1.0
    high_mid: float = 1.0
    presence: float = 1.0
    brilliance: float = 1.0

    def as_dict(self) -> dict[str, float]:
        return {item.name: float(getattr(self, item.name)) for item in fields(self)}


@dataclass(frozen=True, slots=True)
class StereoProfile:
    """Stereo field metrics for a buffer or stereo targets for a chain."""

    width: float = 0.0
    correlation: float = 1.0
    center_balance: float = 0.0
    mono_compatibility: float = 1.0
    bass_mono_below_hz: float = 0.0


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """Immutable analysis snapshot of a single buffer."""

    analysis_id: str
    sample_rate: int
    channels: int
    duration_seconds: float
    momentary_lufs: float
    short_term_lufs: float
    integrated_lufs: float
    true_peak_dbfs: float
    dynamic_range_db: float
    spectral: SpectralProfile
    stereo: StereoProfile
    phase_coherent: bool
    advisories: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_silent(self) -> bool:
        return self.integrated_lufs <= LOUDNESS_FLOOR_LUFS

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["advisories"] = list(self.advisories)
        return payload


@dataclass(frozen=True, slots=True)
class Suggestion:
    """Concrete processing move recommended from an analysis."""

    kind: str
    message: str
    parameters: dict[str, float]


def _windowed_spectrum(audio: np.ndarray) -> np.ndarray:
    window = np.hanning(audio.size) if audio.size > 1 else np.ones(audio.size)
    return np.fft.rfft(audio * window)


def _band_masks(sample_rate: int, size: int) -> dict[str, np.ndarray]:
    freqs = np.fft.rfftfreq(size, d=1.0 / sample_rate)
    nyquist = sample_rate / 2.0
    masks: dict[str, np.ndarray] = {}
    for name, (low_hz, high_hz) in BAND_EDGES_HZ.items():
        masks[name] = (freqs >= low_hz) & (freqs < min(high_hz, nyquist + 1.0))
    return masks


def spectral_profile(buffer: AudioBuffer) -> SpectralProfile:
    """Energy density per canonical band, scaled so the populated bands average 1.0."""

    mono = buffer.mono()
    if mono.size < 2:
        return SpectralProfile()

    power = np.square(np.abs(_windowed_spectrum(mono)))
    densities: dict[str, float] = {}
    populated: list[float] = []
    for name, mask in _band_masks(buffer.sample_rate, mono.size).items():
        bins = int(np.count_nonzero(mask))
        densities[name] = float(np.sum(power[mask]) / bins) if bins else 0.0
        if bins:
            populated.append(densities[name])

    mean_density = float(np.mean(populated)) if populated else 0.0
    if mean_density <= _SILENCE_ENERGY:
        return SpectralProfile()
    return SpectralProfile(**{name: value / mean_density for name, value in densities.items()})


def _bass_mono_below_hz(mid: np.ndarray, side: np.ndarray, sample_rate: int) -> float:
    freqs = np.fft.rfftfreq(mid.size, d=1.0 / sample_rate)
    mid_power = np.square(np.abs(np.fft.rfft(mid)))
    side_power = np.square(np.abs(np.fft.rfft(side)))
    below = 0.0
    for cutoff_hz in _BASS_MONO_CANDIDATES_HZ:
        mask = (freqs > 0.0) & (freqs < cutoff_hz)
        mid_energy = float(np.sum(mid_power[mask]))
        if mid_energy <= _SILENCE_ENERGY:
            break
        if float(np.sum(side_power[mask])) / mid_energy > _BASS_MONO_SIDE_RATIO:
            break
        below = cutoff_hz
    return below


def stereo_profile(buffer: AudioBuffer) -> StereoProfile:
    """Width, correlation, balance and mono compatibility of a stereo buffer."""

    if not buffer.is_stereo or buffer.frame_count == 0:
        return StereoProfile()

    left, right = buffer.frames
    left_energy = float(np.sum(np.square(left)))
    right_energy = float(np.sum(np.square(right)))
    if left_energy + right_energy <= _SILENCE_ENERGY:
        return StereoProfile()

    if left_energy > _SILENCE_ENERGY and right_energy > _SILENCE_ENERGY:
        correlation = float(np.sum(left * right) / np.sqrt(left_energy * right_energy))
    else:
        correlation = 0.0

    mid = 0.5 * (left + right)
    side = 0.5 * (left - right)
    mid_energy = float(np.sum(np.square(mid)))
    side_energy = float(np.sum(np.square(side)))
    if mid_energy <= _SILENCE_ENERGY:
        width = _MAX_WIDTH
    else:
        width = min(_MAX_WIDTH, float(np.sqrt(side_energy / mid_energy)))

    mono_compatibility = mid_energy / (0.5 * (left_energy + right_energy))

    return StereoProfile(
        width=width,
        correlation=float(np.clip(correlation, -1.0, 1.0)),
        center_balance=float((right_energy - left_energy) / (left_energy + right_energy)),
        mono_compatibility=float(np.clip(mono_compatibility, 0.0, 1.0)),
        bass_mono_below_hz=_bass_mono_below_hz(mid, side, buffer.sample_rate),
    )


def is_phase_coherent(buffer: AudioBuffer) -> bool:
    """True when the inter-channel phase difference of the dominant bands stays within +/-90 degrees."""

    if not buffer.is_stereo or buffer.frame_count < 2:
        return True

    left, right = buffer.frames
    left_spectrum = _windowed_spectrum(left)
    right_spectrum = _windowed_spectrum(right)
    cross = left_spectrum * np.conj(right_spectrum)
    band_energy = np.square(np.abs(left_spectrum)) + np.square(np.abs(right_spectrum))

    bands: list[tuple[float, float]] = []
    for mask in _band_masks(buffer.sample_rate, left.size).values():
        if not np.any(mask):
            continue
        energy = float(np.sum(band_energy[mask]))
        if energy <= _SILENCE_ENERGY:
            continue
        bands.append((energy, float(np.abs(np.angle(np.sum(cross[mask]))))))
    if not bands:
        return True

    dominant = sorted(bands, key=lambda item: item[0], reverse=True)[:_PHASE_DOMINANT_BANDS]
    return all(phase <= _PHASE_LIMIT_RAD for _, phase in dominant)


def build_advisories(
    integrated_lufs: float,
    true_peak_dbfs: float,
    dynamic_range_db: float,
    spectral: SpectralProfile,
    stereo: StereoProfile,
    phase_coherent: bool,
) -> tuple[str, ...]:
    """Deterministic threshold rules over the measured metrics."""

    silent = integrated_lufs <= LOUDNESS_FLOOR_LUFS
    advisories: list[str] = []

    if integrated_lufs > _TOO_LOUD_LUFS:
        advisories.append("Audio is overly loud - reduce overall level to prevent distortion")
    if integrated_lufs < _TOO_QUIET_LUFS:
        advisories.append("Audio level too quiet - increase gain for streaming compatibility")
    if not silent:
        if dynamic_range_db < _NARROW_DYNAMICS_DB:
            advisories.append("Very narrow dynamic range - consider less aggressive compression")
        if dynamic_range_db > _WIDE_DYNAMICS_DB:
            advisories.append("Wide dynamic range - gentle compression may help on streaming platforms")
    if true_peak_dbfs > _TRUE_PEAK_CEILING_DBFS:
        advisories.append("True peak exceeds -0.1 dBFS - apply limiting to prevent inter-sample clipping")
    if not silent:
        if spectral.bass < _BASS_DEFICIENT:
            advisories.append("Bass frequencies are deficient - enhance 60-250 Hz for a fuller sound")
        if spectral.presence < _PRESENCE_DEFICIENT:
            advisories.append("Presence frequencies (4-8 kHz) are deficient - enhance for clarity")
    if stereo.correlation < _LOW_CORRELATION:
        advisories.append("Low stereo correlation - check for phase issues")
    if stereo.mono_compatibility < _POOR_MONO_COMPATIBILITY:
        advisories.append("Poor mono compatibility - address phase cancellation")
    if not phase_coherent:
        advisories.append("Inter-channel phase exceeds 90 degrees in dominant bands")
    return tuple(advisories)


def analyze(buffer: AudioBuffer, analysis_id: str | None = None) -> AnalysisResult:
    """Measure loudness, dynamics, spectral balance and stereo field of a buffer."""

    frames = buffer.frames
    loudness = measure_loudness(frames, buffer.sample_rate)
    true_peak = measure_true_peak_dbfs(frames)
    dynamic_range = measure_dynamic_range_db(frames, buffer.sample_rate)
    spectral = spectral_profile(buffer)
    stereo = stereo_profile(buffer)
    phase_coherent = is_phase_coherent(buffer)

    return AnalysisResult(
        analysis_id=analysis_id or str(uuid4()),
        sample_rate=buffer.sample_rate,
        channels=buffer.channels,
        duration_seconds=buffer.duration_seconds,
        momentary_lufs=loudness.momentary_lufs,
        short_term_lufs=loudness.short_term_lufs,
        integrated_lufs=loudness.integrated_lufs,
        true_peak_dbfs=true_peak,
        dynamic_range_db=dynamic_range,
        spectral=spectral,
        stereo=stereo,
        phase_coherent=phase_coherent,
        advisories=build_advisories(
            loudness.integrated_lufs, true_peak, dynamic_range, spectral, stereo, phase_coherent
        ),
    )


def generate_suggestions(analysis: AnalysisResult) -> tuple[Suggestion, ...]:
    """Translate an analysis into concrete EQ, compression and limiting moves."""

    suggestions: list[Suggestion] = []
    if analysis.is_silent:
        return tuple(suggestions)

    if analysis.spectral.bass < 0.8:
        suggestions.append(
            Suggestion(
                kind="eq",
                message="Boost low frequencies around 80-120 Hz for a fuller sound",
                parameters={"frequency_hz": 100.0, "gain_db": 2.5, "q": 0.7},
            )
        )
    if analysis.spectral.presence < 0.8:
        suggestions.append(
            Suggestion(
                kind="eq",
                message="Lift presence around 3.5-5 kHz for clarity",
                parameters={"frequency_hz": 4_000.0, "gain_db": 1.5, "q": 0.9},
            )
        )
    if analysis.dynamic_range_db < 6.0:
        suggestions.append(
            Suggestion(
                kind="compression",
                message="Reduce compression ratio to preserve dynamics",
                parameters={"ratio": 2.5, "threshold_db": -18.0},
            )
        )
    if analysis.true_peak_dbfs > _TRUE_PEAK_CEILING_DBFS:
        suggestions.append(
            Suggestion(
                kind="limiting",
                message="Apply gentle limiting to control peaks",
                parameters={"ceiling_db": -0.3, "release_ms": 10.0},
            )
        )
    if analysis.stereo.bass_mono_below_hz < 60.0 and analysis.channels == 2 and analysis.stereo.width > 0.0:
        suggestions.append(
            Suggestion(
                kind="stereo",
                message="Narrow the low end so bass stays mono below about 120 Hz",
                parameters={"crossover_low_hz": 120.0, "low_width": 0.0},
            )
        )
    return tuple(suggestions)
