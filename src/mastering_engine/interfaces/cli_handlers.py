"""CLI-facing handlers that delegate to application services."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any
import json
import csv

from mastering_engine.analysis import AnalysisResult
from mastering_engine.application.mastering_service import MasteringEngine, MasteringRun
from mastering_engine.domain.models import EnhancementRequest, JobStatus, Requirement
from mastering_engine.infrastructure.logging_event_publisher import LoggingEventPublisher
from mastering_engine.infrastructure.pedalboard_codec import load_audio_file, write_audio_file
from mastering_engine.mastering_options import MediaType, Priority, QualityTarget
from mastering_engine.utils.config import EngineSettings, load_chain_config

_event_publisher = LoggingEventPublisher()


@lru_cache(maxsize=1)
def get_engine() -> MasteringEngine:
    return MasteringEngine(settings=EngineSettings.from_env(), event_publisher=_event_publisher)


class ManifestFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


def _write_report(report_json: Path | None, payload: dict[str, Any]) -> None:
    if report_json is None:
        return
    report_json.parent.mkdir(parents=True, exist_ok=True)
    report_json.write_text(json.dumps(payload, indent=2))


def _run_report(run: MasteringRun, output: Path) -> dict[str, Any]:
    engine = get_engine()
    return {
        "output": str(output),
        "chain": run.chain.to_dict(),
        "input_analysis": run.input_analysis.to_dict() if run.input_analysis else None,
        "output_analysis": engine.analyze_audio(run.output).to_dict(),
    }


def analyze_path(source: Path, report_json: Path | None = None) -> AnalysisResult:
    result = get_engine().analyze_audio(load_audio_file(source))
    _write_report(report_json, result.to_dict())
    return result


def master_path(
    source: Path,
    output: Path,
    chain_id: str | None = None,
    target: str | None = None,
    chain_config: Path | None = None,
    report_json: Path | None = None,
) -> Path:
    """Master a file with a preset, a custom chain config, or auto selection."""

    if chain_id is not None and chain_config is not None:
        raise ValueError("Use only one chain source: --chain or --chain-config.")

    engine = get_engine()
    buffer = load_audio_file(source)
    if chain_config is not None:
        chain_id = engine.create_custom_chain(load_chain_config(chain_config))
    if chain_id is not None:
        run = engine.apply_mastering_chain(buffer, chain_id)
        run = MasteringRun(chain=run.chain, output=run.output, input_analysis=engine.analyze_audio(buffer))
    else:
        run = engine.auto_master(buffer, target=target)

    written = write_audio_file(output, run.output)
    _write_report(report_json, _run_report(run, written))
    return written


def match_path(
    source: Path,
    reference_id: str,
    output: Path,
    report_json: Path | None = None,
) -> Path:
    run = get_engine().match_reference(load_audio_file(source), reference_id)
    written = write_audio_file(output, run.output)
    _write_report(report_json, _run_report(run, written))
    return written


def _parse_manifest(manifest_path: Path) -> list[dict[str, str]]:
    suffix = manifest_path.suffix.lower()
    if suffix == ".csv":
        manifest_format = ManifestFormat.CSV
    elif suffix == ".json":
        manifest_format = ManifestFormat.JSON
    else:
        raise ValueError("Manifest must end in .csv or .json.")

    if manifest_format == ManifestFormat.CSV:
        with manifest_path.open("r", newline="", encoding="utf-8") as csv_handle:
            rows = [dict(row) for row in csv.DictReader(csv_handle)]
    else:
        payload = json.loads(manifest_path.read_text(encoding="utf-8"))
        if not isinstance(payload, list):
            raise ValueError("JSON manifest must be an array of item objects.")
        rows = [dict(item) for item in payload]

    if not rows:
        raise ValueError("Manifest does not contain any items.")
    return rows


def _resolve_output_path(item: dict[str, str], source: Path, output_dir: Path, naming_template: str, index: int) -> Path:
    explicit_output = item.get("output", "").strip()
    if explicit_output:
        return output_dir / explicit_output
    return output_dir / naming_template.format(
        index=index, source_name=source.name, source_stem=source.stem, source_suffix=source.suffix
    )


def _requirement_for(item: dict[str, str], chain_id: str | None, target: str | None) -> Requirement:
    item_chain = item.get("chain", "").strip() or chain_id
    if item_chain:
        return Requirement(engine="mastering", operation="apply_chain", parameters={"chain_id": item_chain})
    item_target = item.get("target_profile", "").strip() or target
    return Requirement(engine="mastering", operation="auto_master", parameters={"target": item_target})


def run_batch_mastering(
    manifest: Path | None,
    source_pattern: str | None,
    output_dir: Path,
    naming_template: str,
    concurrency_limit: int,
    chain_id: str | None = None,
    target: str | None = None,
    priority: Priority = Priority.NORMAL,
) -> tuple[list[dict[str, str]], dict[str, int]]:
    """Queue every item on the engine scheduler and write the finished outputs."""

    if manifest is None and not source_pattern:
        raise ValueError("Provide either --manifest or --source-pattern.")
    if manifest is not None and source_pattern:
        raise ValueError("Use only one input source: --manifest or --source-pattern.")

    if manifest is not None:
        rows = _parse_manifest(manifest)
    else:
        matched = sorted(Path().glob(source_pattern or ""))
        rows = [{"source": str(path)} for path in matched if path.is_file()]

    if not rows:
        raise ValueError("No batch input items were resolved.")

    output_dir.mkdir(parents=True, exist_ok=True)
    engine = MasteringEngine(
        settings=EngineSettings.from_env().model_copy(update={"worker_count": max(1, concurrency_limit)}),
        event_publisher=_event_publisher,
    )

    results: dict[int, dict[str, str]] = {}
    queued: list[tuple[int, str, Path, Path]] = []
    with engine:
        for index, item in enumerate(rows, start=1):
            source_value = item.get("source", "").strip()
            record = {"index": str(index), "source": source_value}
            try:
                if not source_value:
                    raise ValueError("Manifest item is missing required 'source' value.")
                source = Path(source_value)
                request = EnhancementRequest(
                    id=f"batch-{index}-{source.stem}",
                    client_id=None,
                    media_type=MediaType.AUDIO,
                    priority=priority,
                    requirements=(_requirement_for(item, chain_id, target),),
                    quality_target=QualityTarget.MASTERING,
                )
                request_id = engine.submit_request(request, load_audio_file(source))
                output = _resolve_output_path(item, source, output_dir, naming_template, index)
                queued.append((index, request_id, source, output))
            except Exception as error:  # noqa: BLE001
                results[index] = {**record, "status": "failed", "error": str(error)}

        for index, request_id, source, output in queued:
            record = {"index": str(index), "source": str(source), "request_id": request_id}
            outcome = engine.wait_for_request(request_id)
            if outcome.status is JobStatus.COMPLETED and outcome.output is not None:
                written = write_audio_file(output, outcome.output)
                results[index] = {
                    **record,
                    "status": "succeeded",
                    "output": str(written),
                    "quality_score": str(outcome.quality_score),
                }
            else:
                reason = outcome.failure_reason.value if outcome.failure_reason else "unknown"
                results[index] = {**record, "status": "failed", "error": outcome.error or reason}

    ordered = [results[index] for index in sorted(results)]
    success_count = sum(1 for item in ordered if item["status"] == "succeeded")
    summary = {
        "total": len(ordered),
        "succeeded": success_count,
        "failed": len(ordered) - success_count,
    }
    return ordered, summary


def chains_payload() -> list[dict[str, Any]]:
    return [chain.to_dict() for chain in get_engine().list_chains()]


def references_payload() -> list[dict[str, Any]]:
    return [reference.to_dict() for reference in get_engine().list_references()]
