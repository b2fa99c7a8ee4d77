"""Loudness, true-peak and dynamic-range measurement.

Loudness follows ITU-R BS.1770: each channel is K-weighted (a high-shelf stage
modelling the acoustic effect of the head followed by a revised low-frequency
B-curve high-pass), mean-square energy is taken over 400 ms blocks with 75 %
overlap, and integrated loudness is the energy average of the blocks that pass
the absolute (-70 LUFS) and relative (-10 LU) gates. Integrated loudness of
anything longer than one block is measured by pyloudnorm.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import numpy as np
import pyloudnorm as pyln
from scipy import signal

from .filters import apply_biquads, high_shelf, highpass

LOUDNESS_FLOOR_LUFS = -70.0
PEAK_FLOOR_DBFS = -120.0
_RELATIVE_GATE_LU = -10.0
_BLOCK_SECONDS = 0.4
_BLOCK_OVERLAP = 0.75
_SHORT_TERM_SECONDS = 3.0
_DYNAMICS_BLOCK_SECONDS = 0.1
_DYNAMICS_GATE_DB = -70.0
_TRUE_PEAK_OVERSAMPLE = 4

# BS.1770 pre-filter stages (shelf gain dB, centre Hz, Q).
_SHELF_GAIN_DB = 4.0
_SHELF_HZ = 1_500.0
_SHELF_Q = 1.0 / np.sqrt(2.0)
_HIGHPASS_HZ = 38.0
_HIGHPASS_Q = 0.5


@dataclass(frozen=True, slots=True)
class LoudnessMeasurement:
    """Momentary, short-term and integrated loudness in LUFS."""

    momentary_lufs: float
    short_term_lufs: float
    integrated_lufs: float


def db_to_gain(value_db: float) -> float:
    return float(10.0 ** (value_db / 20.0))


def gain_to_db(value: float, floor_db: float = PEAK_FLOOR_DBFS) -> float:
    if value <= 0.0:
        return floor_db
    return max(floor_db, float(20.0 * np.log10(value)))


@lru_cache(maxsize=16)
def k_weighting_coefficients(sample_rate: int) -> tuple[tuple[np.ndarray, np.ndarray], ...]:
    """Biquad coefficients for the two K-weighting stages at ``sample_rate``."""

    return (
        high_shelf(_SHELF_HZ, _SHELF_GAIN_DB, _SHELF_Q, sample_rate),
        highpass(_HIGHPASS_HZ, _HIGHPASS_Q, sample_rate),
    )


def k_weight(frames: np.ndarray, sample_rate: int) -> np.ndarray:
    """Apply the K-weighting filter pair to channel-first audio."""

    return apply_biquads(frames, list(k_weighting_coefficients(int(sample_rate))))


def _block_energies(weighted: np.ndarray, sample_rate: int) -> np.ndarray:
    """Channel-summed mean-square energy of overlapping 400 ms blocks."""

    frame_count = weighted.shape[-1]
    block = max(1, int(round(_BLOCK_SECONDS * sample_rate)))
    if frame_count == 0:
        return np.zeros(0)
    if frame_count <= block:
        return np.array([float(np.sum(np.mean(np.square(weighted), axis=-1)))])

    hop = max(1, int(round(block * (1.0 - _BLOCK_OVERLAP))))
    squared = np.square(weighted).sum(axis=0)
    cumulative = np.concatenate(([0.0], np.cumsum(squared)))
    starts = np.arange(0, frame_count - block + 1, hop)
    return (cumulative[starts + block] - cumulative[starts]) / block


def _energy_to_lufs(energy: float) -> float:
    if energy <= 0.0:
        return LOUDNESS_FLOOR_LUFS
    return max(LOUDNESS_FLOOR_LUFS, float(-0.691 + 10.0 * np.log10(energy)))


def measure_loudness(frames: np.ndarray, sample_rate: int) -> LoudnessMeasurement:
    """Measure momentary, short-term and integrated loudness of channel-first audio."""

    frames = np.atleast_2d(np.asarray(frames, dtype=np.float64))
    energies = _block_energies(k_weight(frames, sample_rate), sample_rate)
    if energies.size == 0:
        return LoudnessMeasurement(LOUDNESS_FLOOR_LUFS, LOUDNESS_FLOOR_LUFS, LOUDNESS_FLOOR_LUFS)

    momentary = _energy_to_lufs(float(energies[-1]))

    block = max(1, int(round(_BLOCK_SECONDS * sample_rate)))
    hop = max(1, int(round(block * (1.0 - _BLOCK_OVERLAP))))
    short_term_blocks = max(1, int(round((_SHORT_TERM_SECONDS - _BLOCK_SECONDS) * sample_rate / hop)) + 1)
    short_term = _energy_to_lufs(float(np.mean(energies[-short_term_blocks:])))

    return LoudnessMeasurement(
        momentary_lufs=momentary,
        short_term_lufs=short_term,
        integrated_lufs=_integrated_lufs(frames, sample_rate, energies),
    )


def _integrated_lufs(frames: np.ndarray, sample_rate: int, energies: np.ndarray) -> float:
    gated = _gated_loudness(energies)
    # pyloudnorm rejects audio no longer than one gating block.
    if gated <= LOUDNESS_FLOOR_LUFS or frames.shape[-1] <= int(round(_BLOCK_SECONDS * sample_rate)):
        return gated

    meter = pyln.Meter(sample_rate, block_size=_BLOCK_SECONDS)
    with np.errstate(divide="ignore"):
        measured = float(meter.integrated_loudness(np.moveaxis(frames, 0, -1)))
    if not np.isfinite(measured):
        return LOUDNESS_FLOOR_LUFS
    return max(LOUDNESS_FLOOR_LUFS, measured)


def _gated_loudness(energies: np.ndarray) -> float:
    with np.errstate(divide="ignore"):
        block_lufs = -0.691 + 10.0 * np.log10(energies)
    gated = energies[block_lufs > LOUDNESS_FLOOR_LUFS]
    if gated.size == 0:
        return LOUDNESS_FLOOR_LUFS

    relative_threshold = _energy_to_lufs(float(np.mean(gated))) + _RELATIVE_GATE_LU
    with np.errstate(divide="ignore"):
        gated_lufs = -0.691 + 10.0 * np.log10(gated)
    gated = gated[gated_lufs > relative_threshold]
    if gated.size == 0:
        return LOUDNESS_FLOOR_LUFS
    return _energy_to_lufs(float(np.mean(gated)))


def measure_integrated_lufs(frames: np.ndarray, sample_rate: int) -> float:
    """Measure integrated loudness in LUFS."""

    return measure_loudness(frames, sample_rate).integrated_lufs


def measure_true_peak_dbfs(frames: np.ndarray, oversample_factor: int = _TRUE_PEAK_OVERSAMPLE) -> float:
    """Estimate true peak (dBFS) with band-limited polyphase oversampling per channel."""

    if oversample_factor < 1:
        raise ValueError("oversample_factor must be >= 1")

    frames = np.atleast_2d(np.asarray(frames, dtype=np.float64))
    max_abs_peak = 0.0
    for channel in frames:
        if channel.size == 0:
            continue
        if oversample_factor == 1 or channel.size < 2:
            oversampled = channel
        else:
            oversampled = signal.resample_poly(channel, oversample_factor, 1)
        max_abs_peak = max(max_abs_peak, float(np.max(np.abs(oversampled))), float(np.max(np.abs(channel))))

    return gain_to_db(max_abs_peak)


def measure_dynamic_range_db(frames: np.ndarray, sample_rate: int) -> float:
    """Spread between the loudest 10 % of 100 ms blocks and the blocks below the loudest 20 %."""

    frames = np.atleast_2d(np.asarray(frames, dtype=np.float64))
    block = max(1, int(round(_DYNAMICS_BLOCK_SECONDS * sample_rate)))
    block_count = frames.shape[-1] // block
    if block_count == 0:
        return 0.0

    trimmed = frames[:, : block_count * block]
    mean_square = np.square(trimmed).reshape(frames.shape[0], block_count, block).mean(axis=(0, 2))
    with np.errstate(divide="ignore"):
        block_db = 10.0 * np.log10(mean_square)
    audible = np.sort(block_db[block_db > _DYNAMICS_GATE_DB])[::-1]
    if audible.size < 2:
        return 0.0

    loudest = audible[: max(1, int(np.ceil(0.1 * audible.size)))]
    rest = audible[int(np.ceil(0.2 * audible.size)) :]
    if rest.size == 0:
        return 0.0
    return max(0.0, float(np.mean(loudest) - np.mean(rest)))
