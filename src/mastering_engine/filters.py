"""Shared filter designs: RBJ biquads and a complementary three-band split."""

from __future__ import annotations

import numpy as np
from scipy import signal

Biquad = tuple[np.ndarray, np.ndarray]

_MIN_CROSSOVER_HZ = 10.0
_MAX_CROSSOVER_RATIO = 0.45
_CROSSOVER_ORDER = 4


def _normalized(b: list[float], a: list[float]) -> Biquad:
    b_arr = np.asarray(b, dtype=np.float64)
    a_arr = np.asarray(a, dtype=np.float64)
    return b_arr / a_arr[0], a_arr / a_arr[0]


def _limit_frequency(frequency_hz: float, sample_rate: int) -> float:
    return float(np.clip(frequency_hz, _MIN_CROSSOVER_HZ, _MAX_CROSSOVER_RATIO * sample_rate))


def low_shelf(frequency_hz: float, gain_db: float, q: float, sample_rate: int) -> Biquad:
    amplitude = 10.0 ** (gain_db / 40.0)
    w0 = 2.0 * np.pi * _limit_frequency(frequency_hz, sample_rate) / sample_rate
    alpha = np.sin(w0) / (2.0 * q)
    cos_w0 = np.cos(w0)
    sqrt_a = np.sqrt(amplitude)
    return _normalized(
        [
            amplitude * ((amplitude + 1) - (amplitude - 1) * cos_w0 + 2 * sqrt_a * alpha),
            2 * amplitude * ((amplitude - 1) - (amplitude + 1) * cos_w0),
            amplitude * ((amplitude + 1) - (amplitude - 1) * cos_w0 - 2 * sqrt_a * alpha),
        ],
        [
            (amplitude + 1) + (amplitude - 1) * cos_w0 + 2 * sqrt_a * alpha,
            -2 * ((amplitude - 1) + (amplitude + 1) * cos_w0),
            (amplitude + 1) + (amplitude - 1) * cos_w0 - 2 * sqrt_a * alpha,
        ],
    )


def high_shelf(frequency_hz: float, gain_db: float, q: float, sample_rate: int) -> Biquad:
    amplitude = 10.0 ** (gain_db / 40.0)
    w0 = 2.0 * np.pi * _limit_frequency(frequency_hz, sample_rate) / sample_rate
    alpha = np.sin(w0) / (2.0 * q)
    cos_w0 = np.cos(w0)
    sqrt_a = np.sqrt(amplitude)
    return _normalized(
        [
            amplitude * ((amplitude + 1) + (amplitude - 1) * cos_w0 + 2 * sqrt_a * alpha),
            -2 * amplitude * ((amplitude - 1) + (amplitude + 1) * cos_w0),
            amplitude * ((amplitude + 1) + (amplitude - 1) * cos_w0 - 2 * sqrt_a * alpha),
        ],
        [
            (amplitude + 1) - (amplitude - 1) * cos_w0 + 2 * sqrt_a * alpha,
            2 * ((amplitude - 1) - (amplitude + 1) * cos_w0),
            (amplitude + 1) - (amplitude - 1) * cos_w0 - 2 * sqrt_a * alpha,
        ],
    )


def peaking(frequency_hz: float, gain_db: float, q: float, sample_rate: int) -> Biquad:
    amplitude = 10.0 ** (gain_db / 40.0)
    w0 = 2.0 * np.pi * _limit_frequency(frequency_hz, sample_rate) / sample_rate
    alpha = np.sin(w0) / (2.0 * q)
    cos_w0 = np.cos(w0)
    return _normalized(
        [1 + alpha * amplitude, -2 * cos_w0, 1 - alpha * amplitude],
        [1 + alpha / amplitude, -2 * cos_w0, 1 - alpha / amplitude],
    )


def highpass(frequency_hz: float, q: float, sample_rate: int) -> Biquad:
    w0 = 2.0 * np.pi * _limit_frequency(frequency_hz, sample_rate) / sample_rate
    alpha = np.sin(w0) / (2.0 * q)
    cos_w0 = np.cos(w0)
    return _normalized(
        [(1 + cos_w0) / 2, -(1 + cos_w0), (1 + cos_w0) / 2],
        [1 + alpha, -2 * cos_w0, 1 - alpha],
    )


def apply_biquads(frames: np.ndarray, biquads: list[Biquad]) -> np.ndarray:
    """Run channel-first audio through a cascade of biquads along the last axis."""

    filtered = np.asarray(frames, dtype=np.float64)
    for b, a in biquads:
        filtered = signal.lfilter(b, a, filtered, axis=-1)
    return filtered


def magnitude_db(biquads: list[Biquad], frequencies_hz: np.ndarray, sample_rate: int) -> np.ndarray:
    """Combined magnitude response (dB) of a biquad cascade at the given frequencies."""

    response = np.zeros(frequencies_hz.shape, dtype=np.float64)
    for b, a in biquads:
        _, h = signal.freqz(b, a, worN=frequencies_hz, fs=sample_rate)
        response += 20.0 * np.log10(np.maximum(np.abs(h), 1e-12))
    return response


def split_three_bands(
    frames: np.ndarray, sample_rate: int, low_hz: float, high_hz: float
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split audio into low/mid/high bands that sum back to the input exactly.

    The low-pass stages run forward and backward, so every band is in phase
    with the input.
    """

    low_hz = _limit_frequency(low_hz, sample_rate)
    high_hz = max(_limit_frequency(high_hz, sample_rate), low_hz)

    low_sos = signal.butter(_CROSSOVER_ORDER, low_hz, btype="lowpass", fs=sample_rate, output="sos")
    high_sos = signal.butter(_CROSSOVER_ORDER, high_hz, btype="lowpass", fs=sample_rate, output="sos")

    frames = np.asarray(frames, dtype=np.float64)
    low = _zero_phase(low_sos, frames)
    rest = frames - low
    mid = _zero_phase(high_sos, rest)
    high = rest - mid
    return low, mid, high


def _zero_phase(sos: np.ndarray, frames: np.ndarray) -> np.ndarray:
    padlen = min(3 * (2 * sos.shape[0] + 1), frames.shape[-1] - 1)
    return signal.sosfiltfilt(sos, frames, axis=-1, padlen=max(padlen, 0))
