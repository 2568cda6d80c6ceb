from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..config import RefinementParams
from .tail_segmentation import CrudeBoundary


@dataclass(frozen=True)
class PreciseBoundary:
    start_sample: int
    end_sample: int
    is_valid: bool
    is_precise: bool


def _scan_outward(deviates: np.ndarray, edge: int, limit: int, step: int, sustain: int) -> Optional[int]:
    """
    Walk from ``edge`` towards ``limit`` and return the boundary at the first
    run of ``sustain`` consecutive deviating samples.

    For a leftward walk (``step=-1``) the boundary is the sample just inside
    the run; for a rightward walk it is the first sample of the run.
    """
    run = 0
    for i in range(edge, limit, step):
        if deviates[i]:
            run += 1
            if run >= sustain:
                return i + sustain if step < 0 else i - sustain + 1
        else:
            run = 0
    return None


def refine_boundary(
    signal: np.ndarray,
    crude: CrudeBoundary,
    params: Optional[RefinementParams] = None,
) -> PreciseBoundary:
    """Tighten window-resolution edges to sample-exact tail boundaries.

    The tail level is the median of the signal inside ``crude``. From each
    crude edge the search walks outward, at most ``params.flank`` samples, for
    the first place where the signal departs from that level by more than
    ``params.threshold`` for ``params.sustain`` consecutive samples, so lone
    spikes do not end the tail.

    Returns crude edges with ``is_precise=False`` when either edge has no
    sustained crossing in its flank.
    """
    params = params or RefinementParams()
    n = len(signal)
    start, end = int(crude.start_sample), int(crude.end_sample)
    if not 0 <= start < end <= n:
        return PreciseBoundary(start, end, is_valid=False, is_precise=False)

    values = np.asarray(signal, dtype=np.float64)
    level = float(np.median(values[start:end]))
    deviates = np.abs(values - level) > params.threshold

    new_start = _scan_outward(deviates, start - 1, max(-1, start - 1 - params.flank), -1, params.sustain)
    new_end = _scan_outward(deviates, end, min(n, end + params.flank), 1, params.sustain)

    if new_start is None or new_end is None:
        return PreciseBoundary(start, end, is_valid=True, is_precise=False)
    return PreciseBoundary(new_start, new_end, is_valid=new_start < new_end, is_precise=True)


def tail_length_nt(start_sample: int, end_sample: int, samples_per_nt: float) -> int:
    """Tail length in nucleotides: ``round((end - start) / samples_per_nt)``."""
    if not math.isfinite(samples_per_nt) or samples_per_nt <= 0:
        raise ValueError(f"samples_per_nt must be positive, got {samples_per_nt}")
    return max(0, int(round((end_sample - start_sample) / samples_per_nt)))
