"""Per-read tail calling: extract, align (DNA), segment, refine, emit."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Literal, Optional, Tuple

import numpy as np

from tailfinder.logging_utils import get_logger

from ..config import CallerConfig, SegmentationParams
from ..constants import DNA_COLUMNS, RNA_COLUMNS
from ..errors import FailureKind, ReadAccessError
from ..informatics.format_probe import ExperimentProfile, ExperimentType
from ..informatics.read_locator import ReadHandle
from ..informatics.signal_extraction import ExtractedRead, MoveTable, extract_read
from ..plotting.tail_plotting import save_tail_plot
from .boundary_refinement import PreciseBoundary, refine_boundary, tail_length_nt
from .sequence_alignment import AdapterAlignment, align_adapters
from .tail_segmentation import CrudeBoundary, WindowTraces, compute_window_traces, find_crude_boundary

logger = get_logger(__name__)

MAD_TO_SD = 1.4826


@dataclass(frozen=True)
class TailRecord:
    """One exported row. ``None`` marks a missing (NA) value."""

    read_id: Optional[str]
    file_path: Optional[str]
    read_type: Optional[str] = None
    tail_is_valid: Optional[bool] = None
    tail_start: Optional[int] = None
    tail_end: Optional[int] = None
    samples_per_nt: Optional[float] = None
    tail_length: Optional[int] = None
    has_precise_boundary: Optional[bool] = None
    tail_adjacent_sequence: Optional[str] = None

    @classmethod
    def na(cls, read_id: Optional[str], file_path: Optional[str]) -> "TailRecord":
        return cls(read_id=read_id, file_path=file_path)

    def to_row(self, experiment_type: ExperimentType) -> Dict[str, object]:
        columns = RNA_COLUMNS if experiment_type is ExperimentType.RNA else DNA_COLUMNS
        values = asdict(self)
        return {col: values[col] for col in columns}


@dataclass(frozen=True)
class ReadOutcome:
    record: TailRecord
    failure: Optional[FailureKind] = None


@dataclass(frozen=True)
class TailTrace:
    """What the plot sink needs to draw one read."""

    signal: np.ndarray
    search_region: Tuple[int, int]
    crude: Optional[CrudeBoundary]
    precise: Optional[PreciseBoundary]
    windows: Optional[WindowTraces] = None


@dataclass(frozen=True)
class _TailCall:
    read_type: str
    region: Tuple[int, int]
    params: SegmentationParams
    crude: Optional[CrudeBoundary] = None
    precise: Optional[PreciseBoundary] = None
    samples_per_nt: Optional[float] = None
    tail_length: Optional[int] = None

    @property
    def found(self) -> bool:
        return self.precise is not None and self.precise.is_valid


def normalise_signal(signal: np.ndarray, clip: float) -> np.ndarray:
    """Median/MAD scaling, clipped to ``[-clip, clip]``."""
    x = np.asarray(signal, dtype=np.float64)
    med = float(np.median(x))
    scale = MAD_TO_SD * float(np.median(np.abs(x - med)))
    if not np.isfinite(scale) or scale <= 0:
        scale = float(x.std()) or 1.0
    return np.clip((x - med) / scale, -clip, clip)


def _call_tail(
    signal: np.ndarray,
    moves: MoveTable,
    read_type: str,
    params: SegmentationParams,
    config: CallerConfig,
    region: Tuple[int, int],
    prefer: Literal["first", "last"],
) -> _TailCall:
    crude = find_crude_boundary(signal, params, region[0], region[1], prefer=prefer)
    if crude is None:
        return _TailCall(read_type, region, params)
    precise = refine_boundary(signal, crude, config.refinement)
    if not precise.is_valid:
        return _TailCall(read_type, region, params, crude, precise)
    spn = moves.samples_per_nt(
        precise.start_sample,
        precise.end_sample,
        span=config.calibration_span,
        min_bases=config.calibration_min_bases,
    )
    length = tail_length_nt(precise.start_sample, precise.end_sample, spn)
    return _TailCall(read_type, region, params, crude, precise, spn, length)


def tail_adjacent_sequence(sequence: str, moves: MoveTable, tail_end: int, n_bases: int) -> str:
    """
    The ``n_bases`` bases emitted right after an RNA tail, reported 5'->3'.

    RNA is sequenced 3'->5' while the basecall is stored 5'->3', so base ``k``
    in signal order is ``sequence[-1 - k]``.
    """
    k0 = moves.sample_to_base(tail_end)
    hi = len(sequence) - k0
    if hi <= 0:
        return ""
    return sequence[max(0, hi - n_bases) : hi]


def _rna_search(read: ExtractedRead, signal: np.ndarray, config: CallerConfig) -> _TailCall:
    region = (0, min(signal.size, config.rna_search_samples))
    return _call_tail(signal, read.moves, "polyA", config.rna_polya, config, region, "first")


def _dna_regions(
    alignment: AdapterAlignment, moves: MoveTable, n_samples: int, config: CallerConfig
) -> Dict[str, Tuple[int, int]]:
    """Sample-space search regions seeded by the adapter anchors.

    Without an anchor, poly(T) is sought from the first basecalled sample and
    poly(A) up to the last one. The two regions never overlap, so a tail is
    labelled by the read end it lies on whichever type is probed first.
    """
    slack, reach = config.dna_anchor_slack, config.dna_max_tail_samples
    if alignment.polyt_anchor is not None:
        polyt_seed = moves.base_to_sample(alignment.polyt_anchor)
    else:
        polyt_seed = moves.first_sample
    if alignment.polya_anchor is not None:
        polya_seed = moves.base_to_sample(alignment.polya_anchor)
    else:
        polya_seed = moves.last_sample
    polyt_region = (max(0, polyt_seed - slack), min(n_samples, polyt_seed + reach))
    polya_stop = min(n_samples, polya_seed + slack)
    polya_region = (max(0, polya_stop - reach - slack), polya_stop)
    if polyt_seed < polya_seed:
        # each end owns the half of the read nearest its anchor
        split = (polyt_seed + polya_seed) // 2
        polyt_region = (polyt_region[0], max(polyt_region[0], min(polyt_region[1], split)))
        polya_region = (min(polya_region[1], max(polya_region[0], split)), polya_region[1])
    return {"polyT": polyt_region, "polyA": polya_region}


def _dna_search(read: ExtractedRead, signal: np.ndarray, config: CallerConfig) -> Tuple[_TailCall, AdapterAlignment]:
    alignment = align_adapters(read.basecall.sequence, config.adapters, config.alignment)
    regions = _dna_regions(alignment, read.moves, signal.size, config)
    if not alignment.resolved:
        logger.debug(
            "Read %s: no adapter above minimum score (polyA %d, polyT %d); probing default anchors",
            read.basecall.read_id,
            alignment.polya_score,
            alignment.polyt_score,
        )

    call = None
    for read_type in alignment.probe_order():
        if read_type == "polyT":
            call = _call_tail(
                signal, read.moves, "polyT", config.dna_polyt, config, regions["polyT"], "first"
            )
        else:
            call = _call_tail(
                signal, read.moves, "polyA", config.dna_polya, config, regions["polyA"], "last"
            )
        if call.found:
            break
    return call, alignment


def _record_from_call(
    read: ExtractedRead, call: _TailCall, profile: ExperimentProfile, config: CallerConfig
) -> TailRecord:
    read_id = read.basecall.read_id
    file_path = str(read.basecall.source_file)
    if not call.found:
        return TailRecord(read_id=read_id, file_path=file_path, tail_is_valid=False, has_precise_boundary=False)

    adjacent = None
    if profile.is_rna:
        adjacent = tail_adjacent_sequence(
            read.basecall.sequence, read.moves, call.precise.end_sample, config.rna_adjacent_bases
        )
    return TailRecord(
        read_id=read_id,
        file_path=file_path,
        read_type=call.read_type,
        tail_is_valid=True,
        tail_start=call.precise.start_sample,
        tail_end=call.precise.end_sample,
        samples_per_nt=call.samples_per_nt,
        tail_length=call.tail_length,
        has_precise_boundary=call.precise.is_precise,
        tail_adjacent_sequence=adjacent,
    )


def _classify(call: _TailCall, alignment: Optional[AdapterAlignment]) -> Optional[FailureKind]:
    if not call.found:
        if alignment is not None and not alignment.resolved:
            return FailureKind.ALIGNMENT
        return FailureKind.SEGMENTATION
    if not call.precise.is_precise:
        return FailureKind.REFINEMENT
    return None


def _emit_plot(signal: np.ndarray, call: _TailCall, record: TailRecord, config: CallerConfig) -> None:
    try:
        windows = None
        if config.plot_debug_traces:
            windows = compute_window_traces(signal, call.params, *call.region)
        trace = TailTrace(signal, call.region, call.crude, call.precise, windows)
        save_path = Path(config.plot_dir) / f"{record.read_id}__{Path(record.file_path).stem}.png"
        save_tail_plot(trace, record, save_path, debug=config.plot_debug_traces)
    except Exception as exc:  # plot sink must never change the record
        logger.warning("Could not save plot for read %s: %s", record.read_id, exc)


def process_read(handle: ReadHandle, profile: ExperimentProfile, config: CallerConfig) -> ReadOutcome:
    """
    Call the tail of one read.

    Never raises: unreadable reads and unexpected faults come back as an NA
    record tagged with the matching :class:`FailureKind`.

    Parameters
    ----------
    handle : ReadHandle
        Container path and, for multi-read files, the read id.
    profile : ExperimentProfile
        Run-wide data layout detected by the format probe.
    config : CallerConfig
        Thresholds, adapters and the optional plot sink.

    Returns
    -------
    ReadOutcome
    """
    file_path = str(handle.file_path)
    read_id = handle.read_id
    try:
        read = extract_read(handle, profile)
        read_id = read.basecall.read_id
        signal = normalise_signal(read.signal, config.normalisation_clip)
        alignment = None
        if profile.is_rna:
            call = _rna_search(read, signal, config)
        else:
            call, alignment = _dna_search(read, signal, config)
        record = _record_from_call(read, call, profile, config)
    except ReadAccessError as exc:
        logger.debug("Read %s in %s is unreadable: %s", read_id, file_path, exc)
        return ReadOutcome(TailRecord.na(read_id, file_path), FailureKind.IO)
    except Exception:
        logger.debug("Unexpected failure on read %s in %s", read_id, file_path, exc_info=True)
        return ReadOutcome(TailRecord.na(read_id, file_path), FailureKind.INTERNAL)

    if config.plot_dir is not None:
        _emit_plot(signal, call, record, config)
    return ReadOutcome(record, _classify(call, alignment))
