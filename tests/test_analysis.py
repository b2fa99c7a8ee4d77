import json

import numpy as np
import pytest

from mastering_engine.analysis import (
    SpectralProfile,
    StereoProfile,
    analyze,
    build_advisories,
    generate_suggestions,
    spectral_profile,
)
from mastering_engine.audio_contract import AudioBuffer


def test_all_zero_buffer_reports_fallback_values(silent_stereo):
    result = analyze(silent_stereo)

    assert result.integrated_lufs == -70.0
    assert result.dynamic_range_db == 0.0
    assert result.true_peak_dbfs == -120.0
    assert result.spectral == SpectralProfile()
    assert result.stereo == StereoProfile()
    assert result.phase_coherent is True
    assert result.is_silent
    assert any("too quiet" in advisory for advisory in result.advisories)
    assert not any("dynamic range" in advisory for advisory in result.advisories)


def test_identical_channels_are_fully_correlated(stereo_noise):
    noise = stereo_noise().frames[0]
    buffer = AudioBuffer.from_channels(np.vstack([noise, noise]), 48_000)

    stereo = analyze(buffer).stereo

    assert stereo.correlation == pytest.approx(1.0, abs=1e-9)
    assert stereo.width == pytest.approx(0.0, abs=1e-9)
    assert stereo.mono_compatibility == pytest.approx(1.0, abs=1e-9)
    assert stereo.center_balance == pytest.approx(0.0, abs=1e-9)
    assert stereo.bass_mono_below_hz == 500.0


def test_inverted_channels_are_anti_correlated(stereo_noise):
    noise = stereo_noise().frames[0]
    buffer = AudioBuffer.from_channels(np.vstack([noise, -noise]), 48_000)

    result = analyze(buffer)

    assert result.stereo.correlation == pytest.approx(-1.0, abs=1e-9)
    assert result.stereo.mono_compatibility == pytest.approx(0.0, abs=1e-9)
    assert result.phase_coherent is False
    assert any("Low stereo correlation" in advisory for advisory in result.advisories)
    assert any("Poor mono compatibility" in advisory for advisory in result.advisories)
    assert any("phase" in advisory.lower() for advisory in result.advisories)


def test_one_sided_buffer_reports_balance(stereo_noise):
    noise = stereo_noise().frames[0]
    buffer = AudioBuffer.from_channels(np.vstack([np.zeros_like(noise), noise]), 48_000)

    stereo = analyze(buffer).stereo

    assert stereo.center_balance == pytest.approx(1.0)
    assert stereo.correlation == 0.0


def test_mono_buffer_uses_mono_stereo_defaults(mono_sine):
    result = analyze(mono_sine())

    assert result.channels == 1
    assert result.stereo == StereoProfile()
    assert result.phase_coherent is True


def test_analysis_is_deterministic_for_same_input(stereo_noise):
    buffer = stereo_noise()

    assert analyze(buffer, analysis_id="a") == analyze(buffer, analysis_id="a")


def test_to_dict_is_json_serializable(stereo_noise):
    payload = analyze(stereo_noise(), analysis_id="fixed").to_dict()

    decoded = json.loads(json.dumps(payload))

    assert decoded["analysis_id"] == "fixed"
    assert set(decoded["spectral"]) == {
        "sub_bass",
        "bass",
        "low_mid",
        "midrange",
        "high_mid",
        "presence",
        "brilliance",
    }
    assert isinstance(decoded["advisories"], list)


def test_white_noise_spectrum_is_roughly_flat():
    rng = np.random.default_rng(3)
    buffer = AudioBuffer.from_channels(0.1 * rng.standard_normal(4 * 48_000), 48_000)

    profile = spectral_profile(buffer).as_dict()

    assert np.mean(list(profile.values())) == pytest.approx(1.0, abs=1e-9)
    for value in profile.values():
        assert value == pytest.approx(1.0, abs=0.35)


def test_sine_energy_lands_in_its_band(mono_sine):
    profile = spectral_profile(mono_sine(frequency_hz=1_000.0))

    assert profile.midrange > 5.0
    assert profile.presence < 0.01


def test_advisory_thresholds_are_ordered_and_deterministic():
    advisories = build_advisories(
        integrated_lufs=-4.0,
        true_peak_dbfs=0.5,
        dynamic_range_db=2.0,
        spectral=SpectralProfile(bass=0.5, presence=0.5),
        stereo=StereoProfile(correlation=0.2, mono_compatibility=0.5),
        phase_coherent=False,
    )

    assert [advisory.split()[0] for advisory in advisories] == [
        "Audio",
        "Very",
        "True",
        "Bass",
        "Presence",
        "Low",
        "Poor",
        "Inter-channel",
    ]


def test_suggestions_cover_missing_presence_and_narrow_dynamics(stereo_sine):
    suggestions = generate_suggestions(analyze(stereo_sine()))

    kinds = [suggestion.kind for suggestion in suggestions]
    assert "eq" in kinds
    assert "compression" in kinds
    presence = next(s for s in suggestions if s.kind == "eq" and s.parameters["frequency_hz"] == 4_000.0)
    assert presence.parameters["gain_db"] > 0.0


def test_silent_input_produces_no_suggestions(silent_stereo):
    assert generate_suggestions(analyze(silent_stereo)) == tuple()
