from __future__ import annotations

from typing import Mapping

import numpy as np

from ..filters import split_three_bands
from ..mastering_options import ModuleKind
from .base import BaseProcessor, ParameterRange


def to_mid_side(frames: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    left, right = frames
    return 0.5 * (left + right), 0.5 * (left - right)


def from_mid_side(mid: np.ndarray, side: np.ndarray) -> np.ndarray:
    return np.stack([mid + side, mid - side])


class StereoImagerProcessor(BaseProcessor):
    """Band-wise stereo width applied to the side signal."""

    kind = ModuleKind.STEREO_IMAGER
    parameters = {
        "low_crossover_hz": ParameterRange(20.0, 1_000.0, 200.0),
        "high_crossover_hz": ParameterRange(1_000.0, 16_000.0, 2_000.0),
        "low_width": ParameterRange(0.0, 2.0, 1.0),
        "mid_width": ParameterRange(0.0, 2.0, 1.0),
        "high_width": ParameterRange(0.0, 2.0, 1.0),
    }

    def process(self, frames: np.ndarray, sample_rate: int, params: Mapping[str, float]) -> np.ndarray:
        if frames.shape[0] != 2:
            return frames.copy()

        widths = (params["low_width"], params["mid_width"], params["high_width"])
        if all(width == 1.0 for width in widths):
            return frames.copy()

        mid, side = to_mid_side(frames)
        bands = split_three_bands(
            side, sample_rate, params["low_crossover_hz"], params["high_crossover_hz"]
        )
        shaped_side = sum(width * band for width, band in zip(widths, bands))
        return from_mid_side(mid, shaped_side)
