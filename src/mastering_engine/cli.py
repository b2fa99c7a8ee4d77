"""CLI interface for the mastering engine."""

import json
from pathlib import Path

import typer

from .interfaces.cli_handlers import (
    analyze_path,
    chains_payload,
    master_path,
    match_path,
    references_payload,
    run_batch_mastering,
)
from .mastering_options import MasteringTarget, Priority

app = typer.Typer(help="Mastering engine command line interface")


@app.command("analyze")
def analyze_command(
    source: Path = typer.Option(..., "--input", "-i", help="Path to the audio file to analyze"),
    report_json: Path | None = typer.Option(
        None,
        "--report-json",
        help="Optional path to write the full analysis JSON.",
    ),
) -> None:
    """Measure loudness, dynamics, spectrum and stereo image of a file."""

    result = analyze_path(source, report_json=report_json)
    typer.echo(f"Analysis ID: {result.analysis_id}")
    typer.echo(
        f"Integrated: {result.integrated_lufs:.2f} LUFS  "
        f"True peak: {result.true_peak_dbfs:.2f} dBFS  "
        f"Dynamic range: {result.dynamic_range_db:.2f} dB"
    )
    typer.echo(f"Stereo width: {result.stereo.width:.3f}  Correlation: {result.stereo.correlation:.3f}")
    for advisory in result.advisories:
        typer.echo(f"[ADVISORY] {advisory}")


@app.command("master")
def master_command(
    source: Path = typer.Option(..., "--input", "-i", help="Path to the audio file to master"),
    output: Path = typer.Option(..., "--output", "-o", help="Path to output mastered file"),
    chain: str | None = typer.Option(
        None,
        "--chain",
        "-c",
        help="Preset chain id. When omitted the chain is picked from --target.",
    ),
    target: MasteringTarget = typer.Option(
        MasteringTarget.COMMERCIAL,
        "--target",
        "-t",
        case_sensitive=False,
        help="Delivery target used for automatic chain selection.",
    ),
    chain_config: Path | None = typer.Option(
        None,
        "--chain-config",
        help="YAML or JSON file describing a custom chain.",
    ),
    report_json: Path | None = typer.Option(
        None,
        "--report-json",
        help="Optional path to write mastering diagnostics JSON.",
    ),
) -> None:
    """Master an audio file with a preset, a custom chain, or auto selection."""

    written = master_path(
        source,
        output,
        chain_id=chain,
        target=target.value,
        chain_config=chain_config,
        report_json=report_json,
    )
    typer.echo(f"Mastered audio written to: {written}")


@app.command("match")
def match_command(
    source: Path = typer.Option(..., "--input", "-i", help="Path to the audio file to master"),
    reference: str = typer.Option(..., "--reference", "-r", help="Reference track id"),
    output: Path = typer.Option(..., "--output", "-o", help="Path to output mastered file"),
    report_json: Path | None = typer.Option(
        None,
        "--report-json",
        help="Optional path to write matching diagnostics JSON.",
    ),
) -> None:
    """Master an audio file towards a stored reference profile."""

    written = match_path(source, reference, output, report_json=report_json)
    typer.echo(f"Matched audio written to: {written}")


@app.command("batch-master")
def batch_master_command(
    manifest: Path | None = typer.Option(
        None,
        "--manifest",
        help="Path to CSV or JSON manifest with source/output/chain/target_profile columns.",
    ),
    source_pattern: str | None = typer.Option(
        None,
        "--source-pattern",
        help="Glob pattern used to discover source audio files when no manifest is provided.",
    ),
    output_dir: Path = typer.Option(
        ...,
        "--output-dir",
        help="Directory where mastered outputs will be written.",
    ),
    naming_template: str = typer.Option(
        "{source_stem}_mastered.wav",
        "--naming-template",
        help="Output naming template. Variables: index,source_name,source_stem,source_suffix.",
    ),
    concurrency_limit: int = typer.Option(
        2,
        "--concurrency-limit",
        min=1,
        help="Number of scheduler workers processing requests concurrently.",
    ),
    chain: str | None = typer.Option(None, "--chain", "-c", help="Preset chain id for every item."),
    target: MasteringTarget = typer.Option(
        MasteringTarget.COMMERCIAL,
        "--target",
        "-t",
        case_sensitive=False,
        help="Delivery target for items without an explicit chain.",
    ),
    priority: Priority = typer.Option(
        Priority.NORMAL,
        "--priority",
        case_sensitive=False,
        help="Scheduling priority of the queued requests.",
    ),
) -> None:
    """Batch master multiple files through the request scheduler."""

    results, summary = run_batch_mastering(
        manifest=manifest,
        source_pattern=source_pattern,
        output_dir=output_dir,
        naming_template=naming_template,
        concurrency_limit=concurrency_limit,
        chain_id=chain,
        target=target.value,
        priority=priority,
    )

    for item in results:
        if item["status"] == "succeeded":
            typer.echo(
                "[OK] "
                f"#{item['index']} source={item['source']} "
                f"output={item['output']} quality_score={item['quality_score']} "
                f"request_id={item['request_id']}"
            )
        else:
            typer.echo(
                "[FAILED] "
                f"#{item['index']} source={item['source']} "
                f"error={item['error']} request_id={item.get('request_id', '-')}"
            )

    typer.echo(
        "Summary: "
        f"total={summary['total']} "
        f"succeeded={summary['succeeded']} "
        f"failed={summary['failed']}"
    )


@app.command("chains")
def chains_command() -> None:
    """List the available mastering chains as JSON."""

    typer.echo(json.dumps(chains_payload(), indent=2))


@app.command("references")
def references_command() -> None:
    """List the stored reference profiles as JSON."""

    typer.echo(json.dumps(references_payload(), indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
