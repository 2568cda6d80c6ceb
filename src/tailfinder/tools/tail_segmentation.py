"""Crude tail segmentation: find a sustained flat run in a current trace."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional, Tuple

import numpy as np

from ..config import SegmentationParams


@dataclass(frozen=True)
class CrudeBoundary:
    start_sample: int
    end_sample: int


@dataclass(frozen=True)
class WindowTraces:
    """Per-window statistics of a signal region.

    Window ``i`` covers samples ``[starts[i], starts[i] + window)``.
    """

    window: int
    starts: np.ndarray
    mean: np.ndarray
    slope: np.ndarray
    std: np.ndarray
    tail_like: np.ndarray


def _clip_region(n: int, start: int, stop: Optional[int]) -> Tuple[int, int]:
    start = min(max(int(start), 0), n)
    stop = n if stop is None else min(max(int(stop), start), n)
    return start, stop


def compute_window_traces(
    signal: np.ndarray,
    params: SegmentationParams,
    start: int = 0,
    stop: Optional[int] = None,
) -> WindowTraces:
    """Moving mean, least-squares slope and std over consecutive windows."""
    w = params.window
    start, stop = _clip_region(len(signal), start, stop)
    region = np.asarray(signal[start:stop], dtype=np.float64)
    n_windows = region.size // w
    blocks = region[: n_windows * w].reshape(n_windows, w)

    centered_t = np.arange(w, dtype=np.float64) - (w - 1) / 2.0
    mean = blocks.mean(axis=1) if n_windows else np.empty(0)
    slope = blocks @ centered_t / float(centered_t @ centered_t) if n_windows else np.empty(0)
    std = blocks.std(axis=1) if n_windows else np.empty(0)

    low, high = params.level_band
    tail_like = (
        (mean >= low)
        & (mean <= high)
        & (np.abs(slope) <= params.max_slope)
        & (std <= params.max_std)
    )
    starts = start + np.arange(n_windows, dtype=np.int64) * w
    return WindowTraces(w, starts, mean, slope, std, tail_like)


def find_runs(tail_like: np.ndarray, gap_tolerance: int) -> List[Tuple[int, int, int]]:
    """
    Runs of tail-like windows as ``(first, last, count)`` window indices.

    Up to ``gap_tolerance`` consecutive non-tail-like windows are absorbed
    into a run; ``count`` only counts tail-like windows.
    """
    runs: List[Tuple[int, int, int]] = []
    first = last = None
    count = gap = 0
    for idx, ok in enumerate(tail_like):
        if ok:
            if first is None:
                first, count = idx, 0
            last = idx
            count += 1
            gap = 0
        elif first is not None:
            gap += 1
            if gap > gap_tolerance:
                runs.append((first, last, count))
                first = last = None
                count = gap = 0
    if first is not None:
        runs.append((first, last, count))
    return runs


def find_crude_boundary(
    signal: np.ndarray,
    params: SegmentationParams,
    start: int = 0,
    stop: Optional[int] = None,
    prefer: Literal["first", "last"] = "first",
) -> Optional[CrudeBoundary]:
    """
    Locate a tail-like flat run in ``signal[start:stop]``.

    Parameters
    ----------
    signal : np.ndarray
        Normalised current trace.
    params : SegmentationParams
        Window size, minimum run, gap tolerance and flatness thresholds.
    start, stop : int
        Sample range to scan.
    prefer : {"first", "last"}
        Which qualifying run to report. ``"last"`` is used when the tail is
        expected to end at the search anchor.

    Returns
    -------
    CrudeBoundary or None
        Window-resolution tail edges, or None when no run holds at least
        ``params.min_run`` tail-like windows.
    """
    traces = compute_window_traces(signal, params, start, stop)
    qualifying = [
        run for run in find_runs(traces.tail_like, params.gap_tolerance) if run[2] >= params.min_run
    ]
    if not qualifying:
        return None
    first, last, _ = qualifying[0] if prefer == "first" else qualifying[-1]
    return CrudeBoundary(
        start_sample=int(traces.starts[first]),
        end_sample=int(traces.starts[last]) + traces.window,
    )
