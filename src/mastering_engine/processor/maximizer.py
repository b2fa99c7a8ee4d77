from __future__ import annotations

from typing import Mapping

import numpy as np
from scipy.ndimage import minimum_filter1d, uniform_filter1d

from ..loudness import db_to_gain
from ..mastering_options import ModuleKind
from .base import BaseProcessor, ParameterRange

KNEE_DB = 1.0


def soft_clip(samples: np.ndarray, ceiling: float, knee_db: float = KNEE_DB) -> np.ndarray:
    """Linear below the knee, tanh-shaped above it, strictly below ``ceiling``."""

    knee = ceiling * db_to_gain(-knee_db)
    headroom = ceiling - knee
    magnitude = np.abs(samples)
    over = magnitude > knee
    shaped = magnitude.copy()
    shaped[over] = knee + headroom * np.tanh((magnitude[over] - knee) / headroom)
    return np.sign(samples) * np.minimum(shaped, ceiling)


def release_envelope(gain: np.ndarray, release_coefficient: float) -> np.ndarray:
    """Instant attack, exponential release toward unity."""

    smoothed = np.empty_like(gain)
    state = 1.0
    for index, value in enumerate(gain.tolist()):
        if value < state:
            state = value
        else:
            state = value + release_coefficient * (state - value)
        smoothed[index] = state
    return smoothed


class MaximizerProcessor(BaseProcessor):
    """Look-ahead brickwall maximizer with a soft-clipped ceiling."""

    kind = ModuleKind.MAXIMIZER
    parameters = {
        "input_gain_db": ParameterRange(-24.0, 24.0, 0.0),
        "threshold_db": ParameterRange(-24.0, 0.0, -1.0),
        "ceiling_db": ParameterRange(-12.0, 0.0, -0.1),
        "lookahead_ms": ParameterRange(0.0, 20.0, 5.0),
        "release_ms": ParameterRange(1.0, 1_000.0, 50.0),
    }

    def process(self, frames: np.ndarray, sample_rate: int, params: Mapping[str, float]) -> np.ndarray:
        driven = frames * db_to_gain(params["input_gain_db"])
        ceiling = db_to_gain(params["ceiling_db"])
        limit = min(db_to_gain(params["threshold_db"]), ceiling)

        linked_peak = np.max(np.abs(driven), axis=0)
        required = np.ones_like(linked_peak)
        loud = linked_peak > limit
        required[loud] = limit / linked_peak[loud]

        window = max(1, int(round(params["lookahead_ms"] * 1e-3 * sample_rate)))
        if window > 1:
            # Each smoothed value averages minima over windows that all contain the sample.
            required = minimum_filter1d(required, size=2 * window + 1, mode="nearest")
            required = uniform_filter1d(required, size=window | 1, mode="nearest")

        release = float(np.exp(-1.0 / (params["release_ms"] * 1e-3 * sample_rate)))
        gain = release_envelope(required, release)
        return soft_clip(driven * gain[np.newaxis, :], ceiling)
