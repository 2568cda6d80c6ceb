from .tail_config import (
    AdapterSet,
    AlignmentParams,
    CallerConfig,
    ProtocolKind,
    RefinementParams,
    RunConfig,
    SegmentationParams,
    load_run_config,
)

__all__ = [
    "AdapterSet",
    "AlignmentParams",
    "CallerConfig",
    "ProtocolKind",
    "RefinementParams",
    "RunConfig",
    "SegmentationParams",
    "load_run_config",
]
