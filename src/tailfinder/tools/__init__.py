from .boundary_refinement import PreciseBoundary, refine_boundary, tail_length_nt
from .sequence_alignment import AdapterAlignment, Orientation, align_adapters, local_align
from .tail_caller import ReadOutcome, TailRecord, process_read
from .tail_segmentation import CrudeBoundary, compute_window_traces, find_crude_boundary

__all__ = [
    "AdapterAlignment",
    "CrudeBoundary",
    "Orientation",
    "PreciseBoundary",
    "ReadOutcome",
    "TailRecord",
    "align_adapters",
    "compute_window_traces",
    "find_crude_boundary",
    "local_align",
    "process_read",
    "refine_boundary",
    "tail_length_nt",
]
