from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, TypeVar

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from ..errors import ValidationError
from ..mastering_options import MediaType, ModuleKind, Priority, QualityTarget

ENV_PREFIX = "MASTERING_ENGINE_"

ModelT = TypeVar("ModelT", bound=BaseModel)


class ModuleSpec(BaseModel):
    kind: ModuleKind
    order: int
    id: str | None = None
    enabled: bool = True
    bypass: bool = False
    solo: bool = False
    parameters: dict[str, float] = Field(default_factory=dict)


class ChainSpec(BaseModel):
    name: str = Field(..., min_length=1)
    modules: list[ModuleSpec] = Field(..., min_length=1)
    target_loudness_lufs: float = Field(-14.0, ge=-70.0, le=0.0)
    dynamic_range_db: tuple[float, float] = (6.0, 12.0)
    enabled: bool = True
    loudness_targeting: bool = False

    @field_validator("modules")
    @classmethod
    def _validate_unique_orders(cls, value: list[ModuleSpec]) -> list[ModuleSpec]:
        orders = [module.order for module in value]
        if len(orders) != len(set(orders)):
            raise ValueError("module order values must be unique within a chain.")
        ids = [module.id for module in value if module.id is not None]
        if len(ids) != len(set(ids)):
            raise ValueError("module ids must be unique within a chain.")
        return value

    @field_validator("dynamic_range_db")
    @classmethod
    def _validate_dynamic_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        low, high = value
        if low < 0.0 or low > high:
            raise ValueError("dynamic_range_db must be a (min, max) pair with 0 <= min <= max.")
        return value


class RequirementSpec(BaseModel):
    engine: str = Field(..., min_length=1)
    operation: str = Field(..., min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)
    quality: int = Field(5, ge=1, le=10)
    real_time: bool = False


class EnhancementRequestSpec(BaseModel):
    id: str | None = None
    client_id: str | None = None
    media_type: MediaType = MediaType.AUDIO
    priority: Priority = Priority.NORMAL
    requirements: list[RequirementSpec] = Field(..., min_length=1)
    quality_target: QualityTarget = QualityTarget.PROFESSIONAL
    deadline: datetime | None = None

    @field_validator("deadline")
    @classmethod
    def _validate_deadline(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            raise ValueError("deadline must be timezone-aware.")
        return value


class EngineSettings(BaseModel):
    worker_count: int = Field(2, ge=1, le=64)
    watchdog_interval_s: float = Field(0.25, gt=0.0, le=60.0)
    analysis_cache_size: int = Field(128, ge=1)
    retained_outcomes: int = Field(64, ge=1)
    progress_substeps: int = Field(10, ge=1, le=1_000)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        """Build settings from ``MASTERING_ENGINE_*`` variables, falling back to defaults."""

        environ = os.environ if environ is None else environ
        values = {
            name: environ[f"{ENV_PREFIX}{name.upper()}"]
            for name in cls.model_fields
            if f"{ENV_PREFIX}{name.upper()}" in environ
        }
        return validate_model(cls, values, code="invalid_settings")


def validate_model(model_cls: type[ModelT], data: Any, code: str) -> ModelT:
    """Validate ``data`` into ``model_cls``, converting pydantic errors at the boundary."""

    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValidationError(code, details) from exc


def load_chain_config(path: Path) -> ChainSpec:
    data = _load_config_data(path)
    return validate_model(ChainSpec, data, code="invalid_chain_spec")


def _load_config_data(path: Path) -> dict:
    if path.suffix.lower() in {".yaml", ".yml"}:
        try:
            import yaml
        except ImportError as exc:
            raise ImportError("PyYAML is required to load YAML configs.") from exc

        with path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle) or {}

    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)
