"""Shared mastering option enums and parsing helpers."""

from __future__ import annotations

from enum import Enum
from typing import TypeVar


class ModuleKind(str, Enum):
    """DSP module types available to a mastering chain."""

    LINEAR_PHASE_EQ = "linear_phase_eq"
    MULTIBAND_COMPRESSOR = "multiband_compressor"
    STEREO_IMAGER = "stereo_imager"
    MAXIMIZER = "maximizer"
    EXCITER = "exciter"
    TAPE_SATURATION = "tape_saturation"
    VINTAGE_EQ = "vintage_eq"


class ModuleState(str, Enum):
    """Per-apply resolution of a module's enable/bypass/solo flags."""

    ACTIVE = "active"
    BYPASSED = "bypassed"
    SOLOED_OUT = "soloed_out"


class Priority(str, Enum):
    """Scheduling priority of an enhancement request."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class QualityTarget(str, Enum):
    """Delivery quality requested for an enhancement request."""

    PROFESSIONAL = "professional"
    MASTERING = "mastering"
    BROADCAST = "broadcast"
    CINEMA = "cinema"


class MediaType(str, Enum):
    """Media carried by an enhancement request."""

    AUDIO = "audio"
    VIDEO = "video"
    MIXED_MEDIA = "mixed_media"
    AI_GENERATION = "ai_generation"
    COLLABORATION = "collaboration"


class MasteringTarget(str, Enum):
    """Delivery targets understood by auto mastering."""

    COMMERCIAL = "commercial"
    STREAMING = "streaming"
    AUDIOPHILE = "audiophile"
    BROADCAST = "broadcast"


EnumT = TypeVar("EnumT", bound=Enum)


def enum_values(enum_cls: type[EnumT]) -> tuple[str, ...]:
    """Return enum values for UI/API hinting in declaration order."""

    return tuple(str(member.value) for member in enum_cls)


def parse_case_insensitive_enum(raw_value: str, enum_cls: type[EnumT]) -> EnumT:
    """Parse enum values case-insensitively and raise ValueError with allowed values."""

    normalized = raw_value.strip().lower()
    for member in enum_cls:
        if str(member.value).lower() == normalized:
            return member

    allowed = ", ".join(enum_values(enum_cls))
    enum_name = enum_cls.__name__
    raise ValueError(f"Invalid {enum_name}: '{raw_value}'. Allowed values: {allowed}.")
