from __future__ import annotations

from pathlib import Path

import json
import runpy

import pytest
from typer.testing import CliRunner

from mastering_engine import cli
from mastering_engine.mastering_options import Priority

runner = CliRunner()


def test_cli_master_dispatches_to_handler(monkeypatch):
    captured = {}

    def fake_master(source, output, **kwargs):
        captured.update(kwargs, source=source, output=output)
        return output

    monkeypatch.setattr(cli, "master_path", fake_master)

    result = runner.invoke(
        cli.app,
        ["master", "--input", "song.wav", "--output", "out.wav", "--target", "STREAMING"],
    )

    assert result.exit_code == 0, result.output
    assert captured["source"] == Path("song.wav")
    assert captured["output"] == Path("out.wav")
    assert captured["target"] == "streaming"
    assert captured["chain_id"] is None
    assert captured["chain_config"] is None
    assert "Mastered audio written to: out.wav" in result.output


def test_cli_match_dispatches_to_handler(monkeypatch):
    captured = {}

    def fake_match(source, reference_id, output, report_json=None):
        captured.update(source=source, reference_id=reference_id, report_json=report_json)
        return output

    monkeypatch.setattr(cli, "match_path", fake_match)

    result = runner.invoke(
        cli.app,
        ["match", "-i", "song.wav", "-r", "commercial_pop", "-o", "out.wav", "--report-json", "r.json"],
    )

    assert result.exit_code == 0, result.output
    assert captured == {
        "source": Path("song.wav"),
        "reference_id": "commercial_pop",
        "report_json": Path("r.json"),
    }


def test_cli_batch_master_prints_results_and_summary(monkeypatch):
    captured = {}

    def fake_batch(**kwargs):
        captured.update(kwargs)
        return (
            [
                {
                    "index": "1",
                    "source": "a.wav",
                    "request_id": "batch-1-a",
                    "status": "succeeded",
                    "output": "out/a_mastered.wav",
                    "quality_score": "95",
                },
                {"index": "2", "source": "b.wav", "status": "failed", "error": "boom"},
            ],
            {"total": 2, "succeeded": 1, "failed": 1},
        )

    monkeypatch.setattr(cli, "run_batch_mastering", fake_batch)

    result = runner.invoke(
        cli.app,
        ["batch-master", "--source-pattern", "*.wav", "--output-dir", "out", "--priority", "high"],
    )

    assert result.exit_code == 0, result.output
    assert captured["priority"] is Priority.HIGH
    assert captured["concurrency_limit"] == 2
    assert "[OK] #1 source=a.wav output=out/a_mastered.wav quality_score=95" in result.output
    assert "[FAILED] #2 source=b.wav error=boom request_id=-" in result.output
    assert "Summary: total=2 succeeded=1 failed=1" in result.output


def test_cli_chains_lists_presets():
    result = runner.invoke(cli.app, ["chains"])

    assert result.exit_code == 0, result.output
    ids = {chain["id"] for chain in json.loads(result.output)}
    assert {"commercial_master", "audiophile_master", "streaming_optimized", "broadcast_master"} <= ids


def test_cli_rejects_unknown_target():
    result = runner.invoke(cli.app, ["master", "-i", "a.wav", "-o", "b.wav", "--target", "loud"])

    assert result.exit_code != 0


def test_cli_main_uses_sys_argv(monkeypatch):
    captured = {}

    def fake_analyze(source, report_json=None):
        captured.update(source=source)
        raise SystemExit(0)

    monkeypatch.setattr(cli, "analyze_path", fake_analyze)
    monkeypatch.setattr("sys.argv", ["mastering-engine", "analyze", "--input", "song.wav"])

    with pytest.raises(SystemExit):
        cli.main()

    assert captured["source"] == Path("song.wav")


def test_module_entrypoint_calls_cli_main(monkeypatch):
    called = {"value": False}

    def fake_main():
        called["value"] = True

    monkeypatch.setattr(cli, "main", fake_main)

    with pytest.raises(SystemExit) as exc_info:
        runpy.run_module("mastering_engine.__main__", run_name="__main__")

    assert called["value"]
    assert exc_info.value.code == 0
