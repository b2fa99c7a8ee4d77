from __future__ import annotations

from typing import Mapping

import numpy as np
from scipy import signal

from ..mastering_options import ModuleKind
from .base import BaseProcessor, ParameterRange


class ExciterProcessor(BaseProcessor):
    """Harmonic exciter that adds only the distortion products of a high-passed side chain."""

    kind = ModuleKind.EXCITER
    parameters = {
        "frequency_hz": ParameterRange(1_000.0, 16_000.0, 3_000.0),
        "drive": ParameterRange(0.1, 10.0, 2.0),
        "even_harmonics": ParameterRange(0.0, 1.0, 0.5),
        "mix": ParameterRange(0.0, 1.0, 0.2),
    }

    def process(self, frames: np.ndarray, sample_rate: int, params: Mapping[str, float]) -> np.ndarray:
        if params["mix"] == 0.0:
            return frames.copy()

        cutoff = min(params["frequency_hz"], 0.45 * sample_rate)
        sos = signal.butter(2, cutoff, btype="highpass", fs=sample_rate, output="sos")
        side_chain = signal.sosfilt(sos, frames, axis=-1)

        drive = params["drive"]
        driven = drive * side_chain
        odd = np.tanh(driven) / drive - side_chain
        even = params["even_harmonics"] * np.square(np.sin(driven)) / drive
        harmonics = signal.sosfilt(sos, odd + even, axis=-1)
        return frames + params["mix"] * harmonics
