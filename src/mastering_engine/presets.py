"""Immutable preset mastering chains and auto-master chain selection."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from .analysis import SpectralProfile, StereoProfile
from .chain import MasteringChain, Module
from .mastering_options import MasteringTarget, ModuleKind, parse_case_insensitive_enum


def _commercial_master() -> MasteringChain:
    return MasteringChain(
        id="commercial_master",
        name="Commercial Master",
        preset="competitive_loudness",
        modules=(
            Module.create(
                ModuleKind.LINEAR_PHASE_EQ,
                1,
                {
                    "low_shelf_hz": 80.0,
                    "low_shelf_db": 0.5,
                    "bell1_hz": 500.0,
                    "bell1_db": 0.3,
                    "bell2_hz": 3_000.0,
                    "bell2_db": 0.8,
                    "high_shelf_hz": 10_000.0,
                    "high_shelf_db": 1.2,
                },
                module_id="linear_eq",
            ),
            Module.create(
                ModuleKind.MULTIBAND_COMPRESSOR,
                2,
                {
                    "low_threshold_db": -24.0,
                    "low_ratio": 3.0,
                    "low_attack_ms": 30.0,
                    "low_release_ms": 100.0,
                    "mid_threshold_db": -18.0,
                    "mid_ratio": 4.0,
                    "mid_attack_ms": 10.0,
                    "mid_release_ms": 50.0,
                    "high_threshold_db": -15.0,
                    "high_ratio": 2.5,
                    "high_attack_ms": 3.0,
                    "high_release_ms": 25.0,
                },
                module_id="multiband_comp",
            ),
            Module.create(
                ModuleKind.STEREO_IMAGER,
                3,
                {
                    "low_crossover_hz": 200.0,
                    "high_crossover_hz": 2_000.0,
                    "low_width": 0.3,
                    "mid_width": 1.2,
                    "high_width": 1.5,
                },
                module_id="stereo_imager",
            ),
            Module.create(
                ModuleKind.MAXIMIZER,
                4,
                {"threshold_db": -1.0, "ceiling_db": -0.1, "release_ms": 5.0, "lookahead_ms": 5.0},
                module_id="maximizer",
            ),
        ),
        target_loudness_lufs=-9.0,
        dynamic_range=(4.0, 8.0),
        spectral_target=SpectralProfile(0.8, 1.0, 0.9, 1.0, 1.1, 1.2, 1.0),
        stereo_target=StereoProfile(width=0.5, correlation=0.8, bass_mono_below_hz=120.0),
        loudness_targeting=True,
    )


def _audiophile_master() -> MasteringChain:
    return MasteringChain(
        id="audiophile_master",
        name="Audiophile Master",
        preset="dynamic_preservation",
        modules=(
            Module.create(
                ModuleKind.VINTAGE_EQ,
                1,
                {
                    "low_hz": 100.0,
                    "low_gain_db": 0.2,
                    "mid_hz": 1_000.0,
                    "mid_gain_db": 0.3,
                    "mid_q": 0.7,
                    "high_hz": 8_000.0,
                    "high_gain_db": 0.5,
                    "saturation": 0.15,
                },
                module_id="vintage_eq",
            ),
            Module.create(
                ModuleKind.TAPE_SATURATION,
                2,
                {"drive_db": 3.0, "warmth": 0.4, "bias": 0.1, "flutter_depth_ms": 0.05},
                module_id="tape_saturation",
            ),
            Module.create(
                ModuleKind.MULTIBAND_COMPRESSOR,
                3,
                {
                    "low_threshold_db": -30.0,
                    "low_ratio": 1.5,
                    "low_attack_ms": 50.0,
                    "low_release_ms": 200.0,
                    "mid_threshold_db": -24.0,
                    "mid_ratio": 2.0,
                    "mid_attack_ms": 30.0,
                    "mid_release_ms": 150.0,
                    "high_threshold_db": -20.0,
                    "high_ratio": 1.3,
                    "high_attack_ms": 10.0,
                    "high_release_ms": 100.0,
                },
                module_id="gentle_comp",
            ),
            Module.create(
                ModuleKind.MAXIMIZER,
                4,
                {"threshold_db": -1.5, "ceiling_db": -1.0, "release_ms": 100.0, "lookahead_ms": 10.0},
                module_id="transparent_limiter",
            ),
        ),
        target_loudness_lufs=-16.0,
        dynamic_range=(12.0, 20.0),
        spectral_target=SpectralProfile(0.9, 1.0, 1.0, 1.0, 1.0, 1.0, 1.1),
        stereo_target=StereoProfile(width=0.4, correlation=0.9, bass_mono_below_hz=60.0),
        loudness_targeting=True,
        tuning_profile="conservative",
    )


def _streaming_optimized() -> MasteringChain:
    return MasteringChain(
        id="streaming_optimized",
        name="Streaming Optimized",
        preset="platform_adaptive",
        modules=(
            Module.create(
                ModuleKind.LINEAR_PHASE_EQ,
                1,
                {
                    "low_cut_hz": 30.0,
                    "low_shelf_hz": 100.0,
                    "low_shelf_db": 0.3,
                    "presence_boost_db": 0.7,
                    "air_boost_db": 0.5,
                },
                module_id="platform_eq",
            ),
            Module.create(
                ModuleKind.MULTIBAND_COMPRESSOR,
                2,
                {
                    "low_crossover_hz": 300.0,
                    "high_crossover_hz": 3_000.0,
                    "low_threshold_db": -20.0,
                    "low_ratio": 2.5,
                    "mid_threshold_db": -16.0,
                    "mid_ratio": 3.5,
                    "high_threshold_db": -12.0,
                    "high_ratio": 2.0,
                },
                module_id="streaming_comp",
            ),
            Module.create(
                ModuleKind.MAXIMIZER,
                3,
                {"threshold_db": -1.5, "ceiling_db": -1.0, "release_ms": 50.0, "lookahead_ms": 12.0},
                module_id="adaptive_limiter",
            ),
        ),
        target_loudness_lufs=-14.0,
        dynamic_range=(6.0, 12.0),
        spectral_target=SpectralProfile(0.8, 1.0, 0.95, 1.0, 1.05, 1.15, 1.1),
        stereo_target=StereoProfile(width=0.45, correlation=0.85, bass_mono_below_hz=120.0),
        loudness_targeting=True,
    )


def _broadcast_master() -> MasteringChain:
    return MasteringChain(
        id="broadcast_master",
        name="Broadcast Master",
        preset="loudness_compliance",
        modules=(
            Module.create(
                ModuleKind.LINEAR_PHASE_EQ,
                1,
                {"low_cut_hz": 40.0, "presence_boost_db": 0.5},
                module_id="broadcast_eq",
            ),
            Module.create(
                ModuleKind.MULTIBAND_COMPRESSOR,
                2,
                {
                    "low_threshold_db": -30.0,
                    "low_ratio": 2.0,
                    "mid_threshold_db": -26.0,
                    "mid_ratio": 2.0,
                    "high_threshold_db": -26.0,
                    "high_ratio": 1.5,
                },
                module_id="broadcast_comp",
            ),
            Module.create(
                ModuleKind.MAXIMIZER,
                3,
                {"threshold_db": -2.0, "ceiling_db": -1.0, "release_ms": 80.0, "lookahead_ms": 10.0},
                module_id="broadcast_limiter",
            ),
        ),
        target_loudness_lufs=-23.0,
        dynamic_range=(8.0, 20.0),
        spectral_target=SpectralProfile(),
        stereo_target=StereoProfile(width=0.3, correlation=0.9, bass_mono_below_hz=120.0),
        loudness_targeting=True,
        tuning_profile="conservative",
    )


PRESETS: Mapping[str, MasteringChain] = MappingProxyType(
    {
        chain.id: chain
        for chain in (
            _commercial_master(),
            _audiophile_master(),
            _streaming_optimized(),
            _broadcast_master(),
        )
    }
)

TARGET_TO_PRESET: dict[MasteringTarget, str] = {
    MasteringTarget.COMMERCIAL: "commercial_master",
    MasteringTarget.STREAMING: "streaming_optimized",
    MasteringTarget.AUDIOPHILE: "audiophile_master",
    MasteringTarget.BROADCAST: "broadcast_master",
}


def select_chain_id(target: MasteringTarget | str | None) -> str:
    """Preset id used by auto mastering for a delivery target; unknown targets get the commercial master."""

    if isinstance(target, MasteringTarget):
        return TARGET_TO_PRESET[target]
    try:
        member = parse_case_insensitive_enum("" if target is None else str(target), MasteringTarget)
    except ValueError:
        member = MasteringTarget.COMMERCIAL
    return TARGET_TO_PRESET[member]
