"""Per-read tail plots written as PNG files."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Union

import numpy as np

from tailfinder.logging_utils import get_logger
from tailfinder.optional_imports import require

if TYPE_CHECKING:
    from ..tools.tail_caller import TailRecord, TailTrace

logger = get_logger(__name__)


def _title(record: "TailRecord") -> str:
    if not record.tail_is_valid:
        return f"{record.read_id}: no tail found"
    kind = record.read_type or "tail"
    precise = "" if record.has_precise_boundary else " (crude boundary)"
    return (
        f"{record.read_id}: {kind} {record.tail_length} nt, "
        f"{record.samples_per_nt:.2f} samples/nt{precise}"
    )


def save_tail_plot(
    trace: "TailTrace",
    record: "TailRecord",
    save_path: Union[str, Path],
    debug: bool = False,
    figsize: tuple = (15, 4),
) -> Path:
    """Draw the normalised current trace of one read with its tail boundaries.

    Parameters
    ----------
    trace : TailTrace
        Normalised signal, search region and crude/precise boundaries.
    record : TailRecord
        The exported record, used for the title.
    save_path : str or Path
        Output PNG path. Parent directories are created.
    debug : bool, default False
        Add a second panel with the per-window mean, slope and standard
        deviation used by the segmenter (requires ``trace.windows``).
    figsize : tuple, default (15, 4)
        Size of the signal panel in inches.

    Returns
    -------
    Path
        The written file.
    """
    mfigure = require("matplotlib.figure", extra="plot", purpose="save tail plots")

    show_windows = debug and trace.windows is not None
    n_rows = 2 if show_windows else 1
    fig = mfigure.Figure(figsize=(figsize[0], figsize[1] * n_rows))
    axes = fig.subplots(n_rows, 1, sharex=True, squeeze=False)

    ax = axes[0, 0]
    ax.plot(np.arange(trace.signal.size), trace.signal, lw=0.5, color="0.3")
    ax.axvspan(*trace.search_region, color="tab:blue", alpha=0.08, label="search region")
    if trace.crude is not None:
        for x in (trace.crude.start_sample, trace.crude.end_sample):
            ax.axvline(x, color="tab:orange", ls="--", lw=1)
    if trace.precise is not None and trace.precise.is_valid:
        ax.axvspan(
            trace.precise.start_sample,
            trace.precise.end_sample,
            color="tab:green",
            alpha=0.25,
            label="tail",
        )
    ax.set_ylabel("normalised current")
    ax.set_title(_title(record))
    ax.legend(loc="upper right", fontsize="small")

    if show_windows:
        windows = trace.windows
        centers = windows.starts + windows.window / 2.0
        ax_w = axes[1, 0]
        ax_w.plot(centers, windows.mean, label="mean")
        ax_w.plot(centers, windows.std, label="std")
        ax_w.plot(centers, windows.slope * windows.window, label="slope x window")
        tail_like = windows.tail_like.astype(bool)
        ax_w.scatter(centers[tail_like], windows.mean[tail_like], s=6, color="tab:green")
        ax_w.set_ylabel("window statistics")
        ax_w.legend(loc="upper right", fontsize="small")

    axes[-1, 0].set_xlabel("sample")

    out = Path(save_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out, dpi=150, bbox_inches="tight")
    logger.debug("Saved tail plot %s", out)
    return out
