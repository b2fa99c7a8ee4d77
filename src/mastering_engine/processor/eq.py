from __future__ import annotations

from typing import Mapping

import numpy as np
from scipy import signal

from ..analysis import BAND_EDGES_HZ
from ..filters import high_shelf, highpass, low_shelf, magnitude_db, peaking
from ..mastering_options import ModuleKind
from .base import BaseProcessor, ParameterRange

BAND_GAIN_KEYS: dict[str, str] = {band: f"{band}_gain_db" for band in BAND_EDGES_HZ}

_GAIN = ParameterRange(-12.0, 12.0, 0.0)
_PRESENCE_HZ = 5_000.0
_AIR_HZ = 12_000.0
_FLAT_TOLERANCE_DB = 1e-9
_GRID_POINTS = 512


class LinearPhaseEQProcessor(BaseProcessor):
    """Linear-phase EQ realised as a symmetric FIR designed from a target curve."""

    kind = ModuleKind.LINEAR_PHASE_EQ
    parameters = {
        "low_cut_hz": ParameterRange(0.0, 200.0, 0.0),
        "low_shelf_hz": ParameterRange(20.0, 500.0, 100.0),
        "low_shelf_db": _GAIN,
        "bell1_hz": ParameterRange(20.0, 20_000.0, 400.0),
        "bell1_db": _GAIN,
        "bell1_q": ParameterRange(0.1, 10.0, 1.0),
        "bell2_hz": ParameterRange(20.0, 20_000.0, 3_000.0),
        "bell2_db": _GAIN,
        "bell2_q": ParameterRange(0.1, 10.0, 1.0),
        "high_shelf_hz": ParameterRange(1_000.0, 20_000.0, 10_000.0),
        "high_shelf_db": _GAIN,
        "presence_boost_db": _GAIN,
        "air_boost_db": _GAIN,
        "taps": ParameterRange(255.0, 8_191.0, 2_047.0),
        **{key: _GAIN for key in BAND_GAIN_KEYS.values()},
    }

    def target_curve_db(
        self, frequencies_hz: np.ndarray, sample_rate: int, params: Mapping[str, float]
    ) -> np.ndarray:
        """Desired magnitude response in dB at ``frequencies_hz``."""

        biquads = []
        if params["low_cut_hz"] > 0.0:
            biquads.append(highpass(params["low_cut_hz"], 1.0 / np.sqrt(2.0), sample_rate))
        if params["low_shelf_db"] != 0.0:
            biquads.append(low_shelf(params["low_shelf_hz"], params["low_shelf_db"], 0.707, sample_rate))
        for band in ("bell1", "bell2"):
            if params[f"{band}_db"] != 0.0:
                biquads.append(
                    peaking(params[f"{band}_hz"], params[f"{band}_db"], params[f"{band}_q"], sample_rate)
                )
        if params["high_shelf_db"] != 0.0:
            biquads.append(high_shelf(params["high_shelf_hz"], params["high_shelf_db"], 0.707, sample_rate))
        if params["presence_boost_db"] != 0.0:
            biquads.append(peaking(_PRESENCE_HZ, params["presence_boost_db"], 0.8, sample_rate))
        if params["air_boost_db"] != 0.0:
            biquads.append(high_shelf(_AIR_HZ, params["air_boost_db"], 0.707, sample_rate))

        curve = magnitude_db(biquads, frequencies_hz, sample_rate) if biquads else np.zeros_like(frequencies_hz)
        return curve + self._band_gains_db(frequencies_hz, params)

    def _band_gains_db(self, frequencies_hz: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
        centers = np.array([np.sqrt(low * high) for low, high in BAND_EDGES_HZ.values()])
        gains = np.array([params[key] for key in BAND_GAIN_KEYS.values()])
        if not np.any(gains):
            return np.zeros_like(frequencies_hz)
        return np.interp(np.log10(np.maximum(frequencies_hz, 1.0)), np.log10(centers), gains)

    def process(self, frames: np.ndarray, sample_rate: int, params: Mapping[str, float]) -> np.ndarray:
        nyquist = sample_rate / 2.0
        grid = np.concatenate(([0.0], np.geomspace(10.0, nyquist * 0.999, _GRID_POINTS), [nyquist]))
        curve_db = self.target_curve_db(grid, sample_rate, params)
        if np.all(np.abs(curve_db) < _FLAT_TOLERANCE_DB):
            return frames.copy()

        taps = int(params["taps"]) | 1
        kernel = signal.firwin2(taps, grid, 10.0 ** (curve_db / 20.0), fs=sample_rate, window="hann")

        delay = taps // 2
        frame_count = frames.shape[-1]
        convolved = signal.fftconvolve(frames, kernel[np.newaxis, :], mode="full", axes=-1)
        return convolved[:, delay : delay + frame_count]
