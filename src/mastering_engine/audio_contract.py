"""Audio buffer contract shared by every entry point of the engine.

Invariants
----------
* Samples are finite floating point values stored as a read-only, 1-D,
  interleaved ``float64`` array.
* Only mono and stereo audio is accepted.
* The sample count is a multiple of the channel count.

Anything that violates the contract is rejected with
:class:`~mastering_engine.errors.ValidationError` before it reaches analysis or
processing. Every other edge case (silence, very short buffers) is handled
downstream with fallback values.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import ValidationError

SUPPORTED_CHANNEL_COUNTS: tuple[int, ...] = (1, 2)
MIN_SAMPLE_RATE_HZ = 8_000
MAX_SAMPLE_RATE_HZ = 384_000
DEFAULT_SAMPLE_RATE_HZ = 48_000


@dataclass(frozen=True, slots=True)
class AudioBuffer:
    """Immutable interleaved PCM audio."""

    samples: np.ndarray
    sample_rate: int
    channels: int

    def __post_init__(self) -> None:
        _check_shape(self.samples, self.sample_rate, self.channels)

    @classmethod
    def from_interleaved(
        cls, samples: object, sample_rate: int, channels: int = 1
    ) -> "AudioBuffer":
        """Build a buffer from interleaved samples (L, R, L, R, ... for stereo)."""

        try:
            array = np.array(samples, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise ValidationError("malformed_audio", "Samples must be numeric.") from exc
        array.setflags(write=False)
        return cls(samples=array, sample_rate=int(sample_rate), channels=int(channels))

    @classmethod
    def from_channels(cls, audio: object, sample_rate: int) -> "AudioBuffer":
        """Build a buffer from a channel-first ``(channels, frames)`` or 1-D mono array."""

        try:
            array = np.asarray(audio, dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise ValidationError("malformed_audio", "Samples must be numeric.") from exc
        if array.ndim == 1:
            return cls.from_interleaved(array, sample_rate, channels=1)
        if array.ndim != 2:
            raise ValidationError(
                "malformed_audio", "Audio must be a 1D mono or 2D channel-first array."
            )
        channels = array.shape[0]
        if channels not in SUPPORTED_CHANNEL_COUNTS:
            raise ValidationError(
                "unsupported_channel_count",
                f"Channel count {channels} is outside supported range.",
            )
        return cls.from_interleaved(array.T.reshape(-1), sample_rate, channels=channels)

    @property
    def frame_count(self) -> int:
        return self.samples.size // self.channels

    @property
    def duration_seconds(self) -> float:
        return self.frame_count / float(self.sample_rate)

    @property
    def is_stereo(self) -> bool:
        return self.channels == 2

    @property
    def frames(self) -> np.ndarray:
        """Channel-first ``(channels, frames)`` copy of the samples."""

        return self.samples.reshape(-1, self.channels).T.copy()

    def mono(self) -> np.ndarray:
        """Channel average as a 1-D array."""

        if self.channels == 1:
            return self.samples.copy()
        return self.samples.reshape(-1, self.channels).mean(axis=1)

    def with_frames(self, frames: np.ndarray) -> "AudioBuffer":
        """Return a new buffer with the same format and the given channel-first frames."""

        frames = np.asarray(frames, dtype=np.float64)
        if frames.shape != (self.channels, self.frame_count):
            raise ValidationError(
                "length_mismatch",
                f"Processed audio shape {frames.shape} does not match "
                f"({self.channels}, {self.frame_count}).",
            )
        return AudioBuffer.from_interleaved(frames.T.reshape(-1), self.sample_rate, self.channels)

    def to_stereo(self) -> "AudioBuffer":
        """Duplicate a mono buffer into left/right; stereo buffers are returned as-is."""

        if self.channels == 2:
            return self
        return AudioBuffer.from_interleaved(np.repeat(self.samples, 2), self.sample_rate, 2)


def _check_shape(samples: np.ndarray, sample_rate: int, channels: int) -> None:
    if not isinstance(samples, np.ndarray) or samples.ndim != 1:
        raise ValidationError("malformed_audio", "Samples must be a 1-D interleaved array.")
    if not np.issubdtype(samples.dtype, np.floating):
        raise ValidationError("malformed_audio", "Samples must be floating point.")
    if channels not in SUPPORTED_CHANNEL_COUNTS:
        raise ValidationError(
            "unsupported_channel_count",
            f"Channel count {channels} is outside supported range.",
        )
    if not (MIN_SAMPLE_RATE_HZ <= sample_rate <= MAX_SAMPLE_RATE_HZ):
        raise ValidationError(
            "invalid_sample_rate",
            f"Sample rate {sample_rate}Hz is outside supported range.",
        )
    if samples.size % channels != 0:
        raise ValidationError(
            "malformed_audio",
            f"Sample count {samples.size} is not a multiple of {channels} channels.",
        )
    if samples.size and not np.all(np.isfinite(samples)):
        raise ValidationError("malformed_audio", "Samples must be finite.")
