from __future__ import annotations

from typing import Mapping

import numpy as np

from ..filters import split_three_bands
from ..loudness import db_to_gain
from ..mastering_options import ModuleKind
from .base import BaseProcessor, ParameterRange

BANDS: tuple[str, ...] = ("low", "mid", "high")

_LEVEL_FLOOR_DB = -120.0


def _band_parameters(band: str, threshold_db: float, ratio: float, attack_ms: float, release_ms: float):
    return {
        f"{band}_threshold_db": ParameterRange(-60.0, 0.0, threshold_db),
        f"{band}_ratio": ParameterRange(1.0, 20.0, ratio),
        f"{band}_attack_ms": ParameterRange(0.1, 200.0, attack_ms),
        f"{band}_release_ms": ParameterRange(5.0, 2_000.0, release_ms),
        f"{band}_makeup_db": ParameterRange(0.0, 12.0, 0.0),
    }


def envelope_gain_db(
    level_db: np.ndarray,
    sample_rate: int,
    threshold_db: float,
    ratio: float,
    attack_ms: float,
    release_ms: float,
) -> np.ndarray:
    """Gain reduction (dB, <= 0) of a feed-forward compressor with a dB-domain follower."""

    if ratio <= 1.0:
        return np.zeros_like(level_db)

    attack = float(np.exp(-1.0 / (max(attack_ms, 1e-3) * 1e-3 * sample_rate)))
    release = float(np.exp(-1.0 / (max(release_ms, 1e-3) * 1e-3 * sample_rate)))
    slope = 1.0 - 1.0 / ratio

    target = np.maximum(level_db - threshold_db, 0.0) * slope
    reduction = np.empty_like(target)
    state = 0.0
    for index, value in enumerate(target.tolist()):
        coefficient = attack if value > state else release
        state = coefficient * state + (1.0 - coefficient) * value
        reduction[index] = state
    return -reduction


class MultibandCompressorProcessor(BaseProcessor):
    """Three-band compressor over a complementary crossover with stereo-linked detection."""

    kind = ModuleKind.MULTIBAND_COMPRESSOR
    parameters = {
        "low_crossover_hz": ParameterRange(40.0, 1_000.0, 200.0),
        "high_crossover_hz": ParameterRange(1_000.0, 16_000.0, 2_000.0),
        **_band_parameters("low", -18.0, 2.0, 30.0, 200.0),
        **_band_parameters("mid", -18.0, 2.0, 10.0, 120.0),
        **_band_parameters("high", -18.0, 2.0, 5.0, 80.0),
    }

    def process(self, frames: np.ndarray, sample_rate: int, params: Mapping[str, float]) -> np.ndarray:
        bands = split_three_bands(
            frames, sample_rate, params["low_crossover_hz"], params["high_crossover_hz"]
        )

        output = np.zeros_like(frames, dtype=np.float64)
        for name, band in zip(BANDS, bands):
            linked_peak = np.max(np.abs(band), axis=0)
            with np.errstate(divide="ignore"):
                level_db = np.maximum(20.0 * np.log10(linked_peak), _LEVEL_FLOOR_DB)
            gain_db = envelope_gain_db(
                level_db,
                sample_rate,
                threshold_db=params[f"{name}_threshold_db"],
                ratio=params[f"{name}_ratio"],
                attack_ms=params[f"{name}_attack_ms"],
                release_ms=params[f"{name}_release_ms"],
            )
            gain = np.power(10.0, gain_db / 20.0) * db_to_gain(params[f"{name}_makeup_db"])
            output += band * gain[np.newaxis, :]
        return output
