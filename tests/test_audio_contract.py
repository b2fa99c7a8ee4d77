import numpy as np
import pytest

from mastering_engine.audio_contract import AudioBuffer
from mastering_engine.errors import ValidationError


def test_from_channels_interleaves_left_right() -> None:
    buffer = AudioBuffer.from_channels(np.array([[1.0, 2.0, 3.0], [-1.0, -2.0, -3.0]]), 48_000)

    assert buffer.channels == 2
    assert buffer.frame_count == 3
    assert buffer.samples.tolist() == [1.0, -1.0, 2.0, -2.0, 3.0, -3.0]
    assert buffer.frames.tolist() == [[1.0, 2.0, 3.0], [-1.0, -2.0, -3.0]]


def test_samples_are_read_only() -> None:
    buffer = AudioBuffer.from_interleaved([0.1, 0.2], 48_000, channels=1)

    with pytest.raises(ValueError):
        buffer.samples[0] = 1.0


def test_empty_buffer_is_valid() -> None:
    buffer = AudioBuffer.from_interleaved([], 44_100, channels=2)

    assert buffer.frame_count == 0
    assert buffer.duration_seconds == 0.0


@pytest.mark.parametrize(
    ("samples", "sample_rate", "channels", "code"),
    [
        ([0.0, 0.1, 0.2], 48_000, 2, "malformed_audio"),
        ([0.0, np.nan], 48_000, 1, "malformed_audio"),
        ([0.0, 0.1], 48_000, 6, "unsupported_channel_count"),
        ([0.0, 0.1], 0, 1, "invalid_sample_rate"),
        (["a", "b"], 48_000, 1, "malformed_audio"),
    ],
)
def test_contract_violations_are_rejected(samples, sample_rate, channels, code) -> None:
    with pytest.raises(ValidationError) as exc_info:
        AudioBuffer.from_interleaved(samples, sample_rate, channels=channels)

    assert exc_info.value.code == code


def test_with_frames_rejects_length_change() -> None:
    buffer = AudioBuffer.from_interleaved([0.1, 0.2, 0.3], 48_000, channels=1)

    with pytest.raises(ValidationError) as exc_info:
        buffer.with_frames(np.zeros((1, 2)))

    assert exc_info.value.code == "length_mismatch"


def test_mono_averages_channels_and_to_stereo_duplicates() -> None:
    stereo = AudioBuffer.from_channels(np.array([[1.0, 0.0], [0.0, 1.0]]), 48_000)
    mono = AudioBuffer.from_channels(np.array([0.5, -0.5]), 48_000)

    assert stereo.mono().tolist() == [0.5, 0.5]
    assert mono.to_stereo().frames.tolist() == [[0.5, -0.5], [0.5, -0.5]]
    assert stereo.to_stereo() is stereo
