"""Mastering chain construction, flag resolution and application."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping
from uuid import uuid4

import numpy as np

from .analysis import SpectralProfile, StereoProfile
from .audio_contract import AudioBuffer
from .errors import ValidationError
from .loudness import LOUDNESS_FLOOR_LUFS, measure_integrated_lufs, measure_true_peak_dbfs
from .mastering_options import ModuleKind, ModuleState
from .processor import BaseProcessor, get_processor
from .utils.config import ChainSpec, validate_model


@dataclass(frozen=True, slots=True)
class LoudnessTuning:
    """Tunable constants for loudness target correction around limiting."""

    post_limiter_lufs_tolerance: float
    max_post_limiter_correction_db: float
    max_pre_limiter_gain_db: float = 24.0


@dataclass(frozen=True, slots=True)
class TruePeakTuning:
    """Tunable constants for post-limiter true-peak guard behavior."""

    tolerance_db: float
    oversample_factor: int = 4


LOUDNESS_TUNINGS: dict[str, LoudnessTuning] = {
    "default": LoudnessTuning(
        post_limiter_lufs_tolerance=0.3, max_post_limiter_correction_db=1.5
    ),
    "conservative": LoudnessTuning(
        post_limiter_lufs_tolerance=0.45, max_post_limiter_correction_db=1.0
    ),
    "aggressive": LoudnessTuning(
        post_limiter_lufs_tolerance=0.2, max_post_limiter_correction_db=2.0
    ),
}

TRUE_PEAK_TUNINGS: dict[str, TruePeakTuning] = {
    "default": TruePeakTuning(tolerance_db=0.1, oversample_factor=4),
    "conservative": TruePeakTuning(tolerance_db=0.15, oversample_factor=4),
    "aggressive": TruePeakTuning(tolerance_db=0.05, oversample_factor=4),
}


def resolve_tuning_profile(profile: str) -> str:
    normalized = profile.strip().lower()
    if normalized in LOUDNESS_TUNINGS:
        return normalized
    allowed = ", ".join(sorted(LOUDNESS_TUNINGS))
    raise ValueError(f"Unknown tuning profile '{profile}'. Allowed: {allowed}.")


@dataclass(frozen=True, slots=True)
class Module:
    """A configured DSP module inside a chain."""

    id: str
    kind: ModuleKind
    order: int
    parameters: Mapping[str, float]
    enabled: bool = True
    bypass: bool = False
    solo: bool = False

    @classmethod
    def create(
        cls,
        kind: ModuleKind | str,
        order: int,
        parameters: Mapping[str, float] | None = None,
        module_id: str | None = None,
        enabled: bool = True,
        bypass: bool = False,
        solo: bool = False,
    ) -> "Module":
        """Build a module with parameters clamped into their documented ranges."""

        kind = ModuleKind(kind)
        clamped = get_processor(kind).clamp(parameters)
        return cls(
            id=module_id or f"{kind.value}_{order}",
            kind=kind,
            order=int(order),
            parameters=MappingProxyType(clamped),
            enabled=enabled,
            bypass=bypass,
            solo=solo,
        )

    def with_flags(
        self,
        enabled: bool | None = None,
        bypass: bool | None = None,
        solo: bool | None = None,
    ) -> "Module":
        return replace(
            self,
            enabled=self.enabled if enabled is None else enabled,
            bypass=self.bypass if bypass is None else bypass,
            solo=self.solo if solo is None else solo,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "order": self.order,
            "enabled": self.enabled,
            "bypass": self.bypass,
            "solo": self.solo,
            "parameters": dict(self.parameters),
        }


@dataclass(frozen=True, slots=True)
class ChainStep:
    """A resolved, runnable module."""

    module: Module
    processor: BaseProcessor

    def __call__(self, buffer: AudioBuffer) -> AudioBuffer:
        return self.processor.transform(buffer, self.module.parameters)


@dataclass(frozen=True, slots=True)
class LoudnessTargetedStep(ChainStep):
    """Terminal maximizer step that drives the chain output to a loudness target."""

    target_lufs: float = -14.0
    loudness_tuning: LoudnessTuning = LOUDNESS_TUNINGS["default"]
    true_peak_tuning: TruePeakTuning = TRUE_PEAK_TUNINGS["default"]

    def _limit(self, buffer: AudioBuffer, gain_db: float) -> AudioBuffer:
        return self.processor.transform(buffer, {**self.module.parameters, "input_gain_db": gain_db})

    def __call__(self, buffer: AudioBuffer) -> AudioBuffer:
        pre_limiter_lufs = measure_integrated_lufs(buffer.frames, buffer.sample_rate)
        if pre_limiter_lufs <= LOUDNESS_FLOOR_LUFS:
            return ChainStep.__call__(self, buffer)

        max_gain = self.loudness_tuning.max_pre_limiter_gain_db
        pre_gain_db = float(np.clip(self.target_lufs - pre_limiter_lufs, -max_gain, max_gain))
        limited = self._limit(buffer, pre_gain_db)

        final_lufs = measure_integrated_lufs(limited.frames, limited.sample_rate)
        correction_db = float(
            np.clip(
                self.target_lufs - final_lufs,
                -self.loudness_tuning.max_post_limiter_correction_db,
                self.loudness_tuning.max_post_limiter_correction_db,
            )
        )
        if abs(correction_db) >= self.loudness_tuning.post_limiter_lufs_tolerance:
            limited = self._limit(limited, correction_db)
        return self._true_peak_guard(limited)

    def _true_peak_guard(self, buffer: AudioBuffer) -> AudioBuffer:
        """Trim and re-limit when the oversampled peak overshoots the ceiling."""

        ceiling_db = self.module.parameters["ceiling_db"]
        measured_dbtp = measure_true_peak_dbfs(
            buffer.frames, oversample_factor=self.true_peak_tuning.oversample_factor
        )
        overshoot_db = measured_dbtp - ceiling_db
        if overshoot_db <= 0.0:
            return buffer
        return self._limit(buffer, -(overshoot_db + self.true_peak_tuning.tolerance_db))


@dataclass(frozen=True, slots=True)
class MasteringChain:
    """Ordered, immutable sequence of modules plus the targets it was built for."""

    id: str
    name: str
    modules: tuple[Module, ...]
    target_loudness_lufs: float = -14.0
    dynamic_range: tuple[float, float] = (6.0, 12.0)
    spectral_target: SpectralProfile = field(default_factory=SpectralProfile)
    stereo_target: StereoProfile = field(default_factory=StereoProfile)
    enabled: bool = True
    preset: str | None = None
    loudness_targeting: bool = False
    tuning_profile: str = "default"

    def __post_init__(self) -> None:
        orders = [module.order for module in self.modules]
        if len(orders) != len(set(orders)):
            raise ValidationError(
                "duplicate_module_order", "Module order values must be unique within a chain."
            )
        ids = [module.id for module in self.modules]
        if len(ids) != len(set(ids)):
            raise ValidationError("duplicate_module_id", "Module ids must be unique within a chain.")
        object.__setattr__(self, "modules", tuple(sorted(self.modules, key=lambda module: module.order)))
        object.__setattr__(self, "tuning_profile", resolve_tuning_profile(self.tuning_profile))

    def module(self, module_id: str) -> Module:
        for module in self.modules:
            if module.id == module_id:
                return module
        raise ValidationError("unknown_module", f"Chain '{self.id}' has no module '{module_id}'.")

    def resolve_states(self) -> dict[str, ModuleState]:
        """Resolve enable/bypass/solo flags into one state per module id."""

        solo_mode = any(module.solo for module in self.modules)
        states: dict[str, ModuleState] = {}
        for module in self.modules:
            if solo_mode and not module.solo:
                states[module.id] = ModuleState.SOLOED_OUT
            elif not module.enabled or (module.bypass and not solo_mode):
                states[module.id] = ModuleState.BYPASSED
            else:
                states[module.id] = ModuleState.ACTIVE
        return states

    def compile(self) -> tuple[ChainStep, ...]:
        """Ordered runnable steps for the active modules."""

        if not self.enabled:
            return tuple()

        states = self.resolve_states()
        active = [module for module in self.modules if states[module.id] is ModuleState.ACTIVE]
        steps: list[ChainStep] = [ChainStep(module, get_processor(module.kind)) for module in active]

        if self.loudness_targeting and steps and steps[-1].module.kind is ModuleKind.MAXIMIZER:
            last = steps[-1]
            steps[-1] = LoudnessTargetedStep(
                module=last.module,
                processor=last.processor,
                target_lufs=self.target_loudness_lufs,
                loudness_tuning=LOUDNESS_TUNINGS[self.tuning_profile],
                true_peak_tuning=TRUE_PEAK_TUNINGS[self.tuning_profile],
            )
        return tuple(steps)

    def apply(self, buffer: AudioBuffer) -> AudioBuffer:
        """Run the buffer through every active module in ascending order."""

        for step in self.compile():
            buffer = step(buffer)
        return buffer

    def with_module(self, module: Module) -> "MasteringChain":
        modules = tuple(module if existing.id == module.id else existing for existing in self.modules)
        return replace(self, modules=modules)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "preset": self.preset,
            "enabled": self.enabled,
            "target_loudness_lufs": self.target_loudness_lufs,
            "dynamic_range": list(self.dynamic_range),
            "loudness_targeting": self.loudness_targeting,
            "spectral_target": self.spectral_target.as_dict(),
            "stereo_target": {
                "width": self.stereo_target.width,
                "correlation": self.stereo_target.correlation,
                "center_balance": self.stereo_target.center_balance,
                "mono_compatibility": self.stereo_target.mono_compatibility,
                "bass_mono_below_hz": self.stereo_target.bass_mono_below_hz,
            },
            "modules": [module.to_dict() for module in self.modules],
        }


def chain_from_spec(spec: ChainSpec | Mapping[str, Any], chain_id: str | None = None) -> MasteringChain:
    """Build a chain from a validated (or raw) chain spec."""

    spec = validate_model(ChainSpec, spec, code="invalid_chain_spec")
    modules = tuple(
        Module.create(
            kind=module.kind,
            order=module.order,
            parameters=module.parameters,
            module_id=module.id,
            enabled=module.enabled,
            bypass=module.bypass,
            solo=module.solo,
        )
        for module in spec.modules
    )
    return MasteringChain(
        id=chain_id or str(uuid4()),
        name=spec.name,
        modules=modules,
        target_loudness_lufs=spec.target_loudness_lufs,
        dynamic_range=tuple(spec.dynamic_range_db),
        enabled=spec.enabled,
        preset=None,
        loudness_targeting=spec.loudness_targeting,
    )


class ChainRegistry:
    """Read-only presets plus mutable-by-replacement custom chains."""

    def __init__(self, presets: Mapping[str, MasteringChain] | None = None) -> None:
        self._presets: dict[str, MasteringChain] = dict(presets or {})
        self._custom: dict[str, MasteringChain] = {}
        self._lock = threading.Lock()

    def is_preset(self, chain_id: str) -> bool:
        return chain_id in self._presets

    def get(self, chain_id: str) -> MasteringChain:
        with self._lock:
            chain = self._presets.get(chain_id) or self._custom.get(chain_id)
        if chain is None:
            raise ValidationError("unknown_chain", f"Unknown mastering chain '{chain_id}'.")
        return chain

    def list(self) -> list[MasteringChain]:
        with self._lock:
            return [*self._presets.values(), *self._custom.values()]

    def create_custom_chain(self, spec: ChainSpec | Mapping[str, Any]) -> MasteringChain:
        chain = chain_from_spec(spec)
        with self._lock:
            self._custom[chain.id] = chain
        return chain

    def set_module_flags(
        self,
        chain_id: str,
        module_id: str,
        enabled: bool | None = None,
        bypass: bool | None = None,
        solo: bool | None = None,
    ) -> MasteringChain:
        if self.is_preset(chain_id):
            raise ValidationError("immutable_chain", f"Preset chain '{chain_id}' cannot be modified.")
        with self._lock:
            chain = self._custom.get(chain_id)
            if chain is None:
                raise ValidationError("unknown_chain", f"Unknown mastering chain '{chain_id}'.")
            module = chain.module(module_id).with_flags(enabled=enabled, bypass=bypass, solo=solo)
            updated = chain.with_module(module)
            self._custom[chain_id] = updated
        return updated
