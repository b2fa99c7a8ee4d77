import json
from datetime import datetime

import pytest

from mastering_engine.errors import ValidationError
from mastering_engine.mastering_options import ModuleKind, Priority
from mastering_engine.utils.config import (
    ChainSpec,
    EngineSettings,
    EnhancementRequestSpec,
    load_chain_config,
    validate_model,
)


def _chain_payload() -> dict:
    return {
        "name": "Custom",
        "target_loudness_lufs": -12.0,
        "modules": [
            {"kind": "linear_phase_eq", "order": 1, "parameters": {"presence_boost_db": 1.0}},
            {"kind": "maximizer", "order": 2, "id": "limiter", "parameters": {"ceiling_db": -1.0}},
        ],
    }


def test_chain_spec_parses_modules():
    spec = ChainSpec.model_validate(_chain_payload())

    assert [module.kind for module in spec.modules] == [ModuleKind.LINEAR_PHASE_EQ, ModuleKind.MAXIMIZER]
    assert spec.modules[1].parameters == {"ceiling_db": -1.0}
    assert spec.dynamic_range_db == (6.0, 12.0)


@pytest.mark.parametrize(
    "mutation",
    [
        lambda data: data["modules"][1].update(order=1),
        lambda data: data["modules"][0].update(id="limiter"),
        lambda data: data.update(modules=[]),
        lambda data: data.update(target_loudness_lufs=3.0),
        lambda data: data.update(dynamic_range_db=(12.0, 6.0)),
        lambda data: data["modules"][0].update(kind="reverb"),
    ],
)
def test_chain_spec_rejects_invalid_payloads(mutation):
    data = _chain_payload()
    mutation(data)

    with pytest.raises(ValueError):
        ChainSpec.model_validate(data)


def test_validate_model_converts_pydantic_errors():
    with pytest.raises(ValidationError) as exc_info:
        validate_model(ChainSpec, {"name": "", "modules": []}, code="invalid_chain_spec")

    assert exc_info.value.code == "invalid_chain_spec"
    assert "name" in exc_info.value.message
    assert exc_info.value.as_dict()["code"] == "invalid_chain_spec"


def test_request_spec_defaults_and_deadline_timezone():
    spec = EnhancementRequestSpec.model_validate(
        {"requirements": [{"engine": "mastering", "operation": "analyze"}], "priority": "critical"}
    )

    assert spec.priority is Priority.CRITICAL
    assert spec.requirements[0].quality == 5
    with pytest.raises(ValueError):
        EnhancementRequestSpec.model_validate(
            {
                "requirements": [{"engine": "mastering", "operation": "analyze"}],
                "deadline": datetime(2030, 1, 1),
            }
        )


def test_engine_settings_from_env():
    settings = EngineSettings.from_env(
        {
            "MASTERING_ENGINE_WORKER_COUNT": "4",
            "MASTERING_ENGINE_PROGRESS_SUBSTEPS": "5",
            "UNRELATED": "1",
        }
    )

    assert settings.worker_count == 4
    assert settings.progress_substeps == 5
    assert settings.analysis_cache_size == 128
    assert settings.retained_outcomes == 64


def test_engine_settings_from_env_rejects_bad_values():
    with pytest.raises(ValidationError) as exc_info:
        EngineSettings.from_env({"MASTERING_ENGINE_WORKER_COUNT": "0"})

    assert exc_info.value.code == "invalid_settings"


def test_load_chain_config_reads_json(tmp_path):
    path = tmp_path / "chain.json"
    path.write_text(json.dumps(_chain_payload()))

    spec = load_chain_config(path)

    assert spec.name == "Custom"


def test_load_chain_config_reads_yaml(tmp_path):
    pytest.importorskip("yaml")
    path = tmp_path / "chain.yaml"
    path.write_text(
        "name: Yaml chain\n"
        "modules:\n"
        "  - kind: exciter\n"
        "    order: 1\n"
        "    parameters:\n"
        "      mix: 0.3\n"
    )

    spec = load_chain_config(path)

    assert spec.modules[0].kind is ModuleKind.EXCITER
    assert spec.modules[0].parameters["mix"] == 0.3
