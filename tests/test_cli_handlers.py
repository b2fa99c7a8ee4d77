from pathlib import Path
import json

import numpy as np
import pytest

from mastering_engine.interfaces import cli_handlers


@pytest.fixture
def fake_codec(monkeypatch, stereo_noise):
    """In-memory stand-in for the audio file codec."""

    written: dict[Path, object] = {}

    def _load(path: Path):
        if "missing" in Path(path).name:
            raise FileNotFoundError(f"No such file: {path}")
        return stereo_noise(duration_s=0.5)

    def _write(path: Path, buffer):
        written[path] = buffer
        return path

    monkeypatch.setattr(cli_handlers, "load_audio_file", _load)
    monkeypatch.setattr(cli_handlers, "write_audio_file", _write)
    cli_handlers.get_engine.cache_clear()
    yield written
    cli_handlers.get_engine.cache_clear()


def test_analyze_path_writes_report(fake_codec, tmp_path: Path) -> None:
    report = tmp_path / "reports" / "analysis.json"

    result = cli_handlers.analyze_path(tmp_path / "song.wav", report_json=report)

    payload = json.loads(report.read_text())
    assert payload["analysis_id"] == result.analysis_id
    assert payload["integrated_lufs"] == pytest.approx(result.integrated_lufs)


def test_master_path_with_preset_writes_output_and_report(fake_codec, tmp_path: Path) -> None:
    output = tmp_path / "mastered.wav"
    report = tmp_path / "master.json"

    written = cli_handlers.master_path(
        tmp_path / "song.wav", output, chain_id="streaming_optimized", report_json=report
    )

    assert written == output
    assert output in fake_codec
    payload = json.loads(report.read_text())
    assert payload["chain"]["id"] == "streaming_optimized"
    assert payload["input_analysis"] is not None
    assert payload["output_analysis"]["integrated_lufs"] > payload["input_analysis"]["integrated_lufs"]


def test_master_path_auto_selects_from_target(fake_codec, tmp_path: Path) -> None:
    report = tmp_path / "master.json"

    cli_handlers.master_path(tmp_path / "song.wav", tmp_path / "out.wav", target="broadcast", report_json=report)

    assert json.loads(report.read_text())["chain"]["id"] == "broadcast_master"


def test_master_path_with_chain_config(fake_codec, tmp_path: Path) -> None:
    config = tmp_path / "chain.json"
    config.write_text(
        json.dumps(
            {
                "name": "Ceiling Only",
                "modules": [{"kind": "maximizer", "order": 1, "parameters": {"ceiling_db": -6.0}}],
            }
        )
    )
    output = tmp_path / "out.wav"

    cli_handlers.master_path(tmp_path / "song.wav", output, chain_config=config)

    assert np.max(np.abs(fake_codec[output].samples)) <= 10 ** (-6.0 / 20) + 1e-9


def test_master_path_rejects_two_chain_sources(fake_codec, tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="only one chain source"):
        cli_handlers.master_path(
            tmp_path / "song.wav", tmp_path / "out.wav", chain_id="commercial_master", chain_config=tmp_path / "c.json"
        )


def test_match_path_writes_matching_report(fake_codec, tmp_path: Path) -> None:
    report = tmp_path / "match.json"

    cli_handlers.match_path(tmp_path / "song.wav", "classical_orchestral", tmp_path / "out.wav", report_json=report)

    modules = json.loads(report.read_text())["chain"]["modules"]
    assert [module["id"] for module in modules][0] == "matching_eq"


def test_run_batch_mastering_with_json_manifest(fake_codec, tmp_path: Path) -> None:
    manifest = tmp_path / "batch.json"
    manifest.write_text(
        json.dumps(
            [
                {"source": str(tmp_path / "song_a.wav")},
                {"source": str(tmp_path / "song_b.wav"), "chain": "audiophile_master"},
                {"source": str(tmp_path / "song_c.wav"), "output": "custom.wav"},
            ]
        )
    )
    output_dir = tmp_path / "out"

    results, summary = cli_handlers.run_batch_mastering(
        manifest=manifest,
        source_pattern=None,
        output_dir=output_dir,
        naming_template="{source_stem}_mastered.wav",
        concurrency_limit=2,
    )

    assert summary == {"total": 3, "succeeded": 3, "failed": 0}
    assert [item["index"] for item in results] == ["1", "2", "3"]
    assert {path.name for path in fake_codec} == {"song_a_mastered.wav", "song_b_mastered.wav", "custom.wav"}
    assert results[0]["request_id"] == "batch-1-song_a"
    assert all(item["quality_score"] == "95" for item in results)


def test_run_batch_mastering_reports_failures(fake_codec, tmp_path: Path) -> None:
    manifest = tmp_path / "batch.csv"
    manifest.write_text(
        "source,chain\n"
        f"{tmp_path / 'missing.wav'},\n"
        f"{tmp_path / 'song.wav'},no_such_chain\n"
        f"{tmp_path / 'song.wav'},\n"
    )

    results, summary = cli_handlers.run_batch_mastering(
        manifest=manifest,
        source_pattern=None,
        output_dir=tmp_path / "out",
        naming_template="{index}_{source_stem}.wav",
        concurrency_limit=1,
    )

    assert summary == {"total": 3, "succeeded": 1, "failed": 2}
    assert "No such file" in results[0]["error"]
    assert "no_such_chain" in results[1]["error"]
    assert results[2]["status"] == "succeeded"
    assert results[2]["output"].endswith("3_song.wav")


@pytest.mark.parametrize(
    ("manifest", "pattern", "message"),
    [
        (None, None, "Provide either"),
        (Path("batch.csv"), "*.wav", "only one input source"),
    ],
)
def test_run_batch_mastering_requires_one_input_source(tmp_path: Path, manifest, pattern, message) -> None:
    with pytest.raises(ValueError, match=message):
        cli_handlers.run_batch_mastering(
            manifest=manifest,
            source_pattern=pattern,
            output_dir=tmp_path,
            naming_template="{source_stem}.wav",
            concurrency_limit=1,
        )


def test_parse_manifest_rejects_unknown_format(tmp_path: Path) -> None:
    manifest = tmp_path / "batch.txt"
    manifest.write_text("source\n")

    with pytest.raises(ValueError, match=".csv or .json"):
        cli_handlers.run_batch_mastering(
            manifest=manifest,
            source_pattern=None,
            output_dir=tmp_path,
            naming_template="{source_stem}.wav",
            concurrency_limit=1,
        )


def test_listing_payloads_are_json_ready(fake_codec) -> None:
    chains = cli_handlers.chains_payload()
    references = cli_handlers.references_payload()

    json.dumps(chains)
    json.dumps(references)
    assert {chain["id"] for chain in chains} >= {"commercial_master", "broadcast_master"}
    assert len(references) == 4
