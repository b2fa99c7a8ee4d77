from __future__ import annotations

from typing import Mapping

import numpy as np

from ..filters import apply_biquads, high_shelf, low_shelf, peaking
from ..mastering_options import ModuleKind
from .base import BaseProcessor, ParameterRange

_GAIN = ParameterRange(-15.0, 15.0, 0.0)
_FULL_COLOUR_DB = 15.0
_COLOUR_DEPTH = 0.1


class VintageEQProcessor(BaseProcessor):
    """Three-band console EQ whose harmonic colour grows with the applied gain."""

    kind = ModuleKind.VINTAGE_EQ
    parameters = {
        "low_hz": ParameterRange(20.0, 500.0, 100.0),
        "low_gain_db": _GAIN,
        "mid_hz": ParameterRange(200.0, 8_000.0, 1_600.0),
        "mid_gain_db": _GAIN,
        "mid_q": ParameterRange(0.3, 5.0, 0.7),
        "high_hz": ParameterRange(3_000.0, 20_000.0, 10_000.0),
        "high_gain_db": _GAIN,
        "saturation": ParameterRange(0.0, 1.0, 0.1),
    }

    def process(self, frames: np.ndarray, sample_rate: int, params: Mapping[str, float]) -> np.ndarray:
        gains = (params["low_gain_db"], params["mid_gain_db"], params["high_gain_db"])
        if not any(gains):
            return frames.copy()

        equalized = apply_biquads(
            frames,
            [
                low_shelf(params["low_hz"], params["low_gain_db"], 0.707, sample_rate),
                peaking(params["mid_hz"], params["mid_gain_db"], params["mid_q"], sample_rate),
                high_shelf(params["high_hz"], params["high_gain_db"], 0.707, sample_rate),
            ],
        )

        colour = params["saturation"] * min(1.0, sum(abs(gain) for gain in gains) / _FULL_COLOUR_DB)
        return equalized + _COLOUR_DEPTH * colour * np.power(np.sin(equalized), 3)
