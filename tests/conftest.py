import numpy as np
import pytest

from mastering_engine.audio_contract import AudioBuffer

SAMPLE_RATE = 48_000


def _time(duration_s: float, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    return np.arange(int(sample_rate * duration_s)) / sample_rate


@pytest.fixture
def sample_rate() -> int:
    return SAMPLE_RATE


@pytest.fixture
def stereo_sine():
    """1 kHz sine at -20 dBFS, identical on both channels."""

    def _make(amplitude: float = 0.1, frequency_hz: float = 1_000.0, duration_s: float = 2.0) -> AudioBuffer:
        tone = amplitude * np.sin(2 * np.pi * frequency_hz * _time(duration_s))
        return AudioBuffer.from_channels(np.vstack([tone, tone]), SAMPLE_RATE)

    return _make


@pytest.fixture
def mono_sine():
    def _make(amplitude: float = 0.1, frequency_hz: float = 1_000.0, duration_s: float = 2.0) -> AudioBuffer:
        tone = amplitude * np.sin(2 * np.pi * frequency_hz * _time(duration_s))
        return AudioBuffer.from_channels(tone, SAMPLE_RATE)

    return _make


@pytest.fixture
def stereo_noise():
    """Seeded, partly correlated stereo noise."""

    def _make(amplitude: float = 0.1, duration_s: float = 2.0, seed: int = 7) -> AudioBuffer:
        rng = np.random.default_rng(seed)
        frames = int(SAMPLE_RATE * duration_s)
        common = rng.standard_normal(frames)
        left = common + 0.3 * rng.standard_normal(frames)
        right = common + 0.3 * rng.standard_normal(frames)
        stacked = np.vstack([left, right])
        stacked *= amplitude / np.max(np.abs(stacked))
        return AudioBuffer.from_channels(stacked, SAMPLE_RATE)

    return _make


@pytest.fixture
def silent_stereo() -> AudioBuffer:
    return AudioBuffer.from_channels(np.zeros((2, SAMPLE_RATE)), SAMPLE_RATE)
