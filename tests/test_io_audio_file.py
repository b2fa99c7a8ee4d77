import numpy as np

from mastering_engine.infrastructure.pedalboard_codec import load_audio_file, write_audio_file


def test_write_and_read_audio_roundtrip(tmp_path, stereo_sine):
    buffer = stereo_sine(amplitude=0.5, duration_s=0.1)
    path = tmp_path / "nested" / "roundtrip.wav"

    written = write_audio_file(path, buffer)
    loaded = load_audio_file(written)

    assert written == path
    assert loaded.sample_rate == buffer.sample_rate
    assert loaded.channels == 2
    assert loaded.frame_count == buffer.frame_count
    assert np.allclose(loaded.samples, buffer.samples, atol=1e-3)


def test_mono_file_loads_as_single_channel(tmp_path, mono_sine):
    buffer = mono_sine(amplitude=0.25, duration_s=0.05)
    path = write_audio_file(tmp_path / "mono.wav", buffer)

    loaded = load_audio_file(path)

    assert loaded.channels == 1
    assert loaded.frame_count == buffer.frame_count
