from .config import (
    ChainSpec,
    EngineSettings,
    EnhancementRequestSpec,
    ModuleSpec,
    RequirementSpec,
    load_chain_config,
    validate_model,
)

__all__ = [
    "ChainSpec",
    "EngineSettings",
    "EnhancementRequestSpec",
    "ModuleSpec",
    "RequirementSpec",
    "load_chain_config",
    "validate_model",
]
