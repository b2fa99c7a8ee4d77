import numpy as np
import pytest

from mastering_engine.chain import (
    ChainRegistry,
    LoudnessTargetedStep,
    MasteringChain,
    Module,
    chain_from_spec,
    resolve_tuning_profile,
)
from mastering_engine.errors import ValidationError
from mastering_engine.loudness import measure_integrated_lufs, measure_true_peak_dbfs
from mastering_engine.mastering_options import ModuleKind, ModuleState
from mastering_engine.presets import PRESETS


def _chain(*modules: Module, **kwargs) -> MasteringChain:
    return MasteringChain(id="test", name="Test", modules=modules, **kwargs)


def _gain_chain(**flags) -> MasteringChain:
    return _chain(
        Module.create(ModuleKind.VINTAGE_EQ, 2, {"low_gain_db": 6.0, "saturation": 0.0}, module_id="eq", **flags),
        Module.create(ModuleKind.MAXIMIZER, 1, {"input_gain_db": -6.0}, module_id="trim"),
    )


def test_modules_are_sorted_by_order_and_parameters_are_read_only():
    chain = _gain_chain()

    assert [module.id for module in chain.modules] == ["trim", "eq"]
    with pytest.raises(TypeError):
        chain.modules[0].parameters["input_gain_db"] = 0.0


def test_duplicate_orders_and_ids_are_rejected():
    first = Module.create(ModuleKind.MAXIMIZER, 1)

    with pytest.raises(ValidationError) as orders:
        _chain(first, Module.create(ModuleKind.EXCITER, 1))
    with pytest.raises(ValidationError) as ids:
        _chain(first, Module.create(ModuleKind.EXCITER, 2, module_id=first.id))

    assert orders.value.code == "duplicate_module_order"
    assert ids.value.code == "duplicate_module_id"


def test_unknown_parameter_is_rejected_when_building_a_module():
    with pytest.raises(ValidationError) as exc_info:
        Module.create(ModuleKind.MAXIMIZER, 1, {"knee_db": 2.0})

    assert exc_info.value.code == "unknown_parameter"


def test_resolve_states_without_solo():
    chain = _chain(
        Module.create(ModuleKind.EXCITER, 1, module_id="a"),
        Module.create(ModuleKind.EXCITER, 2, module_id="b", bypass=True),
        Module.create(ModuleKind.EXCITER, 3, module_id="c", enabled=False),
    )

    assert chain.resolve_states() == {
        "a": ModuleState.ACTIVE,
        "b": ModuleState.BYPASSED,
        "c": ModuleState.BYPASSED,
    }


def test_solo_runs_only_enabled_soloed_modules_and_ignores_bypass():
    chain = _chain(
        Module.create(ModuleKind.EXCITER, 1, module_id="a"),
        Module.create(ModuleKind.EXCITER, 2, module_id="b", solo=True, bypass=True),
        Module.create(ModuleKind.EXCITER, 3, module_id="c", solo=True, enabled=False),
    )

    assert chain.resolve_states() == {
        "a": ModuleState.SOLOED_OUT,
        "b": ModuleState.ACTIVE,
        "c": ModuleState.BYPASSED,
    }
    assert [step.module.id for step in chain.compile()] == ["b"]


def test_bypassed_module_does_not_touch_audio(stereo_sine):
    buffer = stereo_sine()
    trimmed = _gain_chain(bypass=True).apply(buffer)

    np.testing.assert_allclose(trimmed.samples, buffer.samples * 10 ** (-6 / 20), atol=1e-12)


def test_disabled_chain_is_identity(stereo_noise):
    buffer = stereo_noise()
    chain = PRESETS["commercial_master"]

    disabled = MasteringChain(
        id="off", name="Off", modules=chain.modules, enabled=False, loudness_targeting=True
    )

    assert disabled.compile() == tuple()
    assert disabled.apply(buffer) is buffer


def test_chain_application_is_deterministic(stereo_noise):
    buffer = stereo_noise()
    chain = PRESETS["audiophile_master"]

    first = chain.apply(buffer)
    second = chain.apply(buffer)

    np.testing.assert_array_equal(first.samples, second.samples)


def test_loudness_targeting_wraps_only_a_terminal_maximizer():
    modules = (
        Module.create(ModuleKind.EXCITER, 1),
        Module.create(ModuleKind.MAXIMIZER, 2),
    )

    targeted = _chain(*modules, loudness_targeting=True).compile()
    untargeted = _chain(*modules).compile()
    reversed_chain = _chain(
        Module.create(ModuleKind.MAXIMIZER, 1), Module.create(ModuleKind.EXCITER, 2), loudness_targeting=True
    ).compile()

    assert isinstance(targeted[-1], LoudnessTargetedStep)
    assert not any(isinstance(step, LoudnessTargetedStep) for step in untargeted)
    assert not any(isinstance(step, LoudnessTargetedStep) for step in reversed_chain)


def test_loudness_targeted_maximizer_hits_target_and_ceiling(stereo_noise):
    buffer = stereo_noise(amplitude=0.05, duration_s=3.0)
    chain = _chain(
        Module.create(ModuleKind.MAXIMIZER, 1, {"ceiling_db": -1.0, "threshold_db": -1.0}),
        target_loudness_lufs=-12.0,
        loudness_targeting=True,
    )

    output = chain.apply(buffer)

    assert measure_integrated_lufs(output.frames, output.sample_rate) == pytest.approx(-12.0, abs=1.0)
    assert measure_true_peak_dbfs(output.frames) <= -1.0 + 0.05


def test_loudness_targeting_leaves_silence_alone(silent_stereo):
    chain = _chain(Module.create(ModuleKind.MAXIMIZER, 1), loudness_targeting=True)

    output = chain.apply(silent_stereo)

    assert not np.any(output.samples)


def test_unknown_tuning_profile_lists_allowed_values():
    with pytest.raises(ValueError, match="aggressive, conservative, default"):
        resolve_tuning_profile("extreme")

    assert resolve_tuning_profile(" Conservative ") == "conservative"


def test_chain_from_spec_validates_payload():
    chain = chain_from_spec(
        {
            "name": "Custom",
            "modules": [
                {"kind": "maximizer", "order": 2, "parameters": {"ceiling_db": -0.5}},
                {"kind": "exciter", "order": 1, "id": "air"},
            ],
        },
        chain_id="custom-1",
    )

    assert chain.id == "custom-1"
    assert [module.id for module in chain.modules] == ["air", "maximizer_2"]
    assert chain.module("maximizer_2").parameters["ceiling_db"] == -0.5

    with pytest.raises(ValidationError) as exc_info:
        chain_from_spec({"name": "Broken", "modules": [{"kind": "reverb", "order": 1}]})
    assert exc_info.value.code == "invalid_chain_spec"


def test_registry_protects_presets_and_updates_custom_chains():
    registry = ChainRegistry(PRESETS)
    custom = registry.create_custom_chain(
        {"name": "Custom", "modules": [{"kind": "exciter", "order": 1, "id": "air"}]}
    )

    updated = registry.set_module_flags(custom.id, "air", bypass=True)

    assert updated.module("air").bypass is True
    assert registry.get(custom.id) is updated
    assert custom.module("air").bypass is False
    with pytest.raises(ValidationError) as immutable:
        registry.set_module_flags("commercial_master", "maximizer", bypass=True)
    with pytest.raises(ValidationError) as unknown:
        registry.get("missing")
    assert immutable.value.code == "immutable_chain"
    assert unknown.value.code == "unknown_chain"
    assert {chain.id for chain in registry.list()} >= set(PRESETS) | {custom.id}
