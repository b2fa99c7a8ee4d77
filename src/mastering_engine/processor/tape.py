from __future__ import annotations

from typing import Mapping

import numpy as np
from scipy import signal

from ..loudness import db_to_gain
from ..mastering_options import ModuleKind
from .base import BaseProcessor, ParameterRange

_WARMTH_CORNER_HZ = 120.0


def saturate(samples: np.ndarray, drive_db: float, bias: float) -> np.ndarray:
    """Bias-offset tanh saturation normalised to unity small-signal gain."""

    drive = db_to_gain(drive_db)
    offset = np.tanh(bias)
    slope = drive * (1.0 - offset**2)
    return (np.tanh(drive * samples + bias) - offset) / slope


def flutter(frames: np.ndarray, sample_rate: int, rate_hz: float, depth_ms: float) -> np.ndarray:
    """Sinusoidally modulated fractional delay."""

    frame_count = frames.shape[-1]
    positions = np.arange(frame_count, dtype=np.float64)
    depth = depth_ms * 1e-3 * sample_rate
    delay = 0.5 * depth * (1.0 - np.cos(2.0 * np.pi * rate_hz * positions / sample_rate))
    read_positions = positions - delay
    return np.stack([np.interp(read_positions, positions, channel) for channel in frames])


class TapeSaturationProcessor(BaseProcessor):
    """Tape-style saturation with low-frequency warmth and flutter."""

    kind = ModuleKind.TAPE_SATURATION
    parameters = {
        "drive_db": ParameterRange(0.0, 24.0, 3.0),
        "bias": ParameterRange(-0.5, 0.5, 0.1),
        "warmth": ParameterRange(0.0, 1.0, 0.3),
        "flutter_rate_hz": ParameterRange(0.1, 10.0, 0.5),
        "flutter_depth_ms": ParameterRange(0.0, 2.0, 0.05),
    }

    def process(self, frames: np.ndarray, sample_rate: int, params: Mapping[str, float]) -> np.ndarray:
        shaped = saturate(frames, params["drive_db"], params["bias"])

        if params["warmth"] > 0.0:
            coefficient = 1.0 - np.exp(-2.0 * np.pi * _WARMTH_CORNER_HZ / sample_rate)
            low = signal.lfilter([coefficient], [1.0, coefficient - 1.0], shaped, axis=-1)
            shaped = shaped + 0.5 * params["warmth"] * low

        if params["flutter_depth_ms"] > 0.0:
            shaped = flutter(shaped, sample_rate, params["flutter_rate_hz"], params["flutter_depth_ms"])
        return shaped
