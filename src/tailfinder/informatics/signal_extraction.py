from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import numpy as np

from tailfinder.logging_utils import get_logger

from ..errors import ReadAccessError
from .fast5_reader import Fast5Read, Fast5Reader
from .format_probe import BasecallModel, ExperimentProfile
from .read_locator import ReadHandle

logger = get_logger(__name__)

DEFAULT_BLOCK_STRIDE = 10


@dataclass(frozen=True)
class BasecallRecord:
    read_id: str
    sequence: str
    source_file: Path
    is_1d: bool = True


class MoveTable:
    """
    Base-space <-> sample-space mapping for one read.

    The table is a run of signal blocks. Block ``i`` starts at sample
    ``block_starts[i]``, spans ``block_lengths[i]`` samples and emits
    ``moves[i]`` bases (0 or 1 for flip-flop, 0..2 for standard event tables).
    Bases are numbered in signal order.
    """

    def __init__(self, moves, block_starts, block_lengths):
        self.moves = np.asarray(moves, dtype=np.int64)
        self.block_starts = np.asarray(block_starts, dtype=np.int64)
        self.block_lengths = np.asarray(block_lengths, dtype=np.int64)
        if not (self.moves.shape == self.block_starts.shape == self.block_lengths.shape):
            raise ValueError("moves, block_starts and block_lengths must have equal length")
        if self.moves.size == 0 or int(self.moves.sum()) == 0:
            raise ValueError("move table emits no bases")
        self._cum_moves = np.concatenate([[0], np.cumsum(self.moves)])
        self._base_block = np.repeat(np.arange(self.moves.size), self.moves)

    @classmethod
    def from_strided_moves(cls, moves, stride: int, first_sample: int = 0) -> "MoveTable":
        """Flip-flop layout: one block per ``stride`` samples after ``first_sample``."""
        moves = np.asarray(moves, dtype=np.int64)
        starts = first_sample + np.arange(moves.size, dtype=np.int64) * int(stride)
        return cls(moves, starts, np.full(moves.size, int(stride), dtype=np.int64))

    @property
    def num_bases(self) -> int:
        return int(self._cum_moves[-1])

    @property
    def first_sample(self) -> int:
        return int(self.block_starts[0])

    @property
    def last_sample(self) -> int:
        return int(self.block_starts[-1] + self.block_lengths[-1])

    def base_to_sample(self, base_index: int) -> int:
        """First sample of the block in which base ``base_index`` is emitted."""
        k = min(max(int(base_index), 0), self.num_bases - 1)
        return int(self.block_starts[self._base_block[k]])

    def sample_to_base(self, sample: int) -> int:
        """Number of bases emitted by blocks starting before ``sample``."""
        idx = int(np.searchsorted(self.block_starts, sample, side="left"))
        return int(self._cum_moves[idx])

    def bases_between(self, start_sample: int, end_sample: int) -> int:
        return max(0, self.sample_to_base(end_sample) - self.sample_to_base(start_sample))

    def global_samples_per_nt(self) -> float:
        return (self.last_sample - self.first_sample) / self.num_bases

    def samples_per_nt(
        self, start_sample: int, end_sample: int, span: int = 2000, min_bases: int = 20
    ) -> float:
        """
        Local samples-per-nucleotide next to a tail spanning ``[start_sample, end_sample)``.

        Homopolymer tails are under-called, so the stride is measured in the
        ``span`` samples on either side of the tail and not inside it. Falls
        back on the read-global stride when fewer than ``min_bases`` bases are
        emitted there.
        """
        left_lo = max(self.first_sample, start_sample - span)
        right_hi = min(self.last_sample, end_sample + span)
        samples = max(0, start_sample - left_lo) + max(0, right_hi - end_sample)
        bases = self.bases_between(left_lo, start_sample) + self.bases_between(end_sample, right_hi)
        if bases >= min_bases and samples > 0:
            return samples / bases
        return self.global_samples_per_nt()


@dataclass(frozen=True)
class ExtractedRead:
    signal: np.ndarray
    moves: MoveTable
    basecall: BasecallRecord
    channel: Dict[str, str]


def _sampling_rate(channel: Dict[str, str]) -> Optional[float]:
    try:
        return float(channel["sampling_rate"])
    except (KeyError, ValueError):
        return None


def _flipflop_moves(read: Fast5Read) -> MoveTable:
    moves = read.move_dataset()
    if moves is None:
        raise ReadAccessError(f"Move table missing for read {read.read_id}")
    summary = read.basecall_summary()
    stride = int(float(summary.get("block_stride", DEFAULT_BLOCK_STRIDE)))
    first_sample = int(float(read.segmentation_summary().get("first_sample_template", 0)))
    return MoveTable.from_strided_moves(moves, stride, first_sample)


def _event_moves(read: Fast5Read, signal_length: int, channel: Dict[str, str]) -> MoveTable:
    events = read.events_table()
    if events is None:
        raise ReadAccessError(f"Event table missing for read {read.read_id}")
    starts = np.asarray(events["start"])
    lengths = np.asarray(events["length"])
    if starts.dtype.kind == "f":
        # Older event tables store times in seconds
        rate = _sampling_rate(channel)
        if rate is None:
            raise ReadAccessError(f"No sampling rate to convert event times for {read.read_id}")
        starts = np.rint(starts * rate)
        lengths = np.rint(lengths * rate)
    starts = starts.astype(np.int64)
    if starts.size and starts[0] >= signal_length:
        # Event starts relative to the run rather than the read
        starts = starts - int(float(read.raw_attrs().get("start_time", 0)))
    if starts.size and (starts[0] < 0 or starts[-1] >= signal_length):
        raise ReadAccessError(f"Event table does not fit the raw signal of {read.read_id}")
    return MoveTable(np.asarray(events["move"]), starts, lengths.astype(np.int64))


def extract_read(handle: ReadHandle, profile: ExperimentProfile) -> ExtractedRead:
    """
    Load the raw signal, move table and basecall of one read.

    Raises
    ------
    ReadAccessError
        If the container or any required dataset is missing or unreadable.
    """
    try:
        with Fast5Reader(handle.file_path) as reader:
            read = reader.read(handle.read_id)
            signal = read.raw_signal()
            channel = read.channel_info()
            sequence = read.sequence()
            if profile.model is BasecallModel.FLIPFLOP:
                moves = _flipflop_moves(read)
            else:
                moves = _event_moves(read, signal.size, channel)
            read_id = read.read_id
    except ReadAccessError:
        raise
    except (KeyError, ValueError, OSError, TypeError) as exc:
        raise ReadAccessError(f"Corrupt read in {handle.file_path}: {exc}") from exc

    if signal.size == 0:
        raise ReadAccessError(f"Empty raw signal for read {read_id}")
    signal.setflags(write=False)
    basecall = BasecallRecord(
        read_id=read_id,
        sequence=sequence,
        source_file=handle.file_path,
        is_1d=profile.read_is_1d,
    )
    return ExtractedRead(signal=signal, moves=moves, basecall=basecall, channel=channel)
