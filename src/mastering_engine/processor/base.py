from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar, Mapping

import numpy as np

from ..audio_contract import AudioBuffer
from ..errors import ProcessingError, ValidationError
from ..mastering_options import ModuleKind


@dataclass(frozen=True, slots=True)
class ParameterRange:
    """Allowed range and default of a single module parameter."""

    minimum: float
    maximum: float
    default: float

    def clamp(self, value: float) -> float:
        return float(min(self.maximum, max(self.minimum, value)))


class BaseProcessor(ABC):
    """Base class for all processing modules."""

    kind: ClassVar[ModuleKind]
    parameters: ClassVar[dict[str, ParameterRange]]

    def defaults(self) -> dict[str, float]:
        return {name: spec.default for name, spec in self.parameters.items()}

    def clamp(self, params: Mapping[str, float] | None = None) -> dict[str, float]:
        """Clamp known parameters into range and fill in defaults for missing ones."""

        params = dict(params or {})
        unknown = sorted(set(params) - set(self.parameters))
        if unknown:
            raise ValidationError(
                "unknown_parameter",
                f"Unknown parameter(s) for {self.kind.value}: {', '.join(unknown)}.",
            )

        values = self.defaults()
        for name, raw_value in params.items():
            try:
                value = float(raw_value)
            except (TypeError, ValueError) as exc:
                raise ValidationError(
                    "invalid_parameter", f"Parameter '{name}' must be numeric."
                ) from exc
            if not np.isfinite(value):
                raise ValidationError("invalid_parameter", f"Parameter '{name}' must be finite.")
            values[name] = self.parameters[name].clamp(value)
        return values

    def transform(self, buffer: AudioBuffer, params: Mapping[str, float] | None = None) -> AudioBuffer:
        """Return a new buffer of the same length processed with ``params``."""

        values = self.clamp(params)
        if buffer.frame_count == 0:
            return buffer

        processed = self.process(buffer.frames, buffer.sample_rate, values)
        if not np.all(np.isfinite(processed)):
            raise ProcessingError(f"{self.kind.value} produced non-finite samples.")
        return buffer.with_frames(processed)

    @abstractmethod
    def process(self, frames: np.ndarray, sample_rate: int, params: Mapping[str, float]) -> np.ndarray:
        """Process channel-first audio and return the transformed signal."""
        raise NotImplementedError
