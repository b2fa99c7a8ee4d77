"""Audio decode/encode adapters backed by pedalboard."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from pedalboard.io import AudioFile

from mastering_engine.audio_contract import AudioBuffer


def load_audio_file(path: Path) -> AudioBuffer:
    """Read an audio file into a validated buffer."""

    with AudioFile(str(path), "r") as audio_file:
        audio = audio_file.read(audio_file.frames)
        sample_rate = int(audio_file.samplerate)
    return AudioBuffer.from_channels(np.asarray(audio, dtype=np.float64), sample_rate)


def write_audio_file(path: Path, buffer: AudioBuffer) -> Path:
    """Write a buffer to disk; the format follows the file suffix."""

    path.parent.mkdir(parents=True, exist_ok=True)
    frames = buffer.frames.astype(np.float32)
    with AudioFile(str(path), "w", buffer.sample_rate, buffer.channels) as output_file:
        output_file.write(frames)
    return path
