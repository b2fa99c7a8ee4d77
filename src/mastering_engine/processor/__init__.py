from ..mastering_options import ModuleKind
from .base import BaseProcessor, ParameterRange
from .eq import LinearPhaseEQProcessor
from .exciter import ExciterProcessor
from .imager import StereoImagerProcessor
from .maximizer import MaximizerProcessor
from .multiband import MultibandCompressorProcessor
from .tape import TapeSaturationProcessor
from .vintage_eq import VintageEQProcessor

PROCESSORS: dict[ModuleKind, BaseProcessor] = {
    processor.kind: processor
    for processor in (
        LinearPhaseEQProcessor(),
        MultibandCompressorProcessor(),
        StereoImagerProcessor(),
        MaximizerProcessor(),
        ExciterProcessor(),
        TapeSaturationProcessor(),
        VintageEQProcessor(),
    )
}

_missing = [kind.value for kind in ModuleKind if kind not in PROCESSORS]
if _missing:
    raise RuntimeError(f"No processor registered for module kind(s): {', '.join(_missing)}")


def get_processor(kind: ModuleKind) -> BaseProcessor:
    return PROCESSORS[kind]


__all__ = [
    "BaseProcessor",
    "ParameterRange",
    "PROCESSORS",
    "get_processor",
    "LinearPhaseEQProcessor",
    "MultibandCompressorProcessor",
    "StereoImagerProcessor",
    "MaximizerProcessor",
    "ExciterProcessor",
    "TapeSaturationProcessor",
    "VintageEQProcessor",
]
