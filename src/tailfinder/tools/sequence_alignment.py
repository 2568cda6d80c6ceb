from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..config import AdapterSet, AlignmentParams

_BASES = frozenset("ACGT")
_NEG = float("-inf")


@dataclass(frozen=True)
class LocalAlignment:
    """Best local alignment of a query inside a target (0-based, end-exclusive)."""

    score: int
    query_start: int
    query_end: int
    target_start: int
    target_end: int


class Orientation(str, Enum):
    POLY_A = "polyA"
    POLY_T = "polyT"
    AMBIGUOUS = "ambiguous"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class AdapterAlignment:
    """Orientation call for a DNA read plus base-space anchors of each tail.

    ``polyt_anchor`` is the first base after the poly(T)-adjacent adapter at
    the read head; ``polya_anchor`` is the first base of the poly(A)-adjacent
    adapter at the read end. An anchor is None when its adapter did not reach
    the minimum score.
    """

    orientation: Orientation
    polya_score: int
    polyt_score: int
    polya_anchor: Optional[int]
    polyt_anchor: Optional[int]

    @property
    def resolved(self) -> bool:
        return self.orientation is not Orientation.UNRESOLVED

    def probe_order(self) -> Tuple[str, str]:
        """Tail types to probe, most likely first."""
        if self.orientation is Orientation.POLY_T:
            return ("polyT", "polyA")
        if self.orientation is Orientation.POLY_A:
            return ("polyA", "polyT")
        if self.polyt_score > self.polya_score:
            return ("polyT", "polyA")
        return ("polyA", "polyT")


def _substitution(a: str, b: str, match_score: int, mismatch_score: int) -> int:
    if a == b and a in _BASES:
        return match_score
    return mismatch_score


def local_align(
    query: str,
    target: str,
    match_score: int = 1,
    mismatch_score: int = -1,
    gap_opening: int = 0,
    gap_extension: int = 1,
) -> LocalAlignment:
    """Smith-Waterman local alignment with affine gaps.

    A gap of length ``k`` costs ``gap_opening + k * gap_extension``; with the
    default scores every gapped base costs 1. The substitution matrix is
    symmetric over A/C/G/T and anything else (N, IUPAC codes) mismatches.

    Args:
        query: Sequence searched for (an adapter).
        target: Sequence searched in (a read region).
        match_score: Score for matching bases.
        mismatch_score: Score for mismatching bases.
        gap_opening: Penalty added once per gap.
        gap_extension: Penalty per gapped base.

    Returns:
        The highest scoring local alignment. Score 0 with empty spans when no
        positive-scoring pairing exists.
    """
    query = query.upper().replace("U", "T")
    target = target.upper().replace("U", "T")
    n, m = len(query), len(target)
    open_cost = gap_opening + gap_extension

    # H: best score ending in a match/mismatch, E: gap in query, F: gap in target.
    # *_start track the (query, target) origin of the alignment ending at each cell.
    h_prev = [0] * (m + 1)
    f_prev = [_NEG] * (m + 1)
    hs_prev = [(0, j) for j in range(m + 1)]
    fs_prev = [(0, j) for j in range(m + 1)]

    best = LocalAlignment(0, 0, 0, 0, 0)
    for i in range(1, n + 1):
        h_cur = [0] * (m + 1)
        f_cur = [_NEG] * (m + 1)
        hs_cur = [(i, 0)] * (m + 1)
        fs_cur = [(i, 0)] * (m + 1)
        e_val = _NEG
        e_start = (i, 0)
        q_base = query[i - 1]
        for j in range(1, m + 1):
            # gap in query (move along target)
            e_ext = e_val - gap_extension
            e_open = h_cur[j - 1] - open_cost
            if e_open >= e_ext:
                e_val, e_start = e_open, hs_cur[j - 1]
            else:
                e_val = e_ext

            # gap in target (move along query)
            f_ext = f_prev[j] - gap_extension
            f_open = h_prev[j] - open_cost
            if f_open >= f_ext:
                f_cur[j], fs_cur[j] = f_open, hs_prev[j]
            else:
                f_cur[j], fs_cur[j] = f_ext, fs_prev[j]

            diag = h_prev[j - 1] + _substitution(q_base, target[j - 1], match_score, mismatch_score)
            diag_start = hs_prev[j - 1] if h_prev[j - 1] > 0 else (i - 1, j - 1)

            score, start = diag, diag_start
            if e_val > score:
                score, start = e_val, e_start
            if f_cur[j] > score:
                score, start = f_cur[j], fs_cur[j]
            if score <= 0:
                score, start = 0, (i, j)

            h_cur[j] = score
            hs_cur[j] = start
            if score > best.score:
                best = LocalAlignment(int(score), start[0], i, start[1], j)

        h_prev, f_prev, hs_prev, fs_prev = h_cur, f_cur, hs_cur, fs_cur

    return best


def _align(adapter: str, region: str, params: AlignmentParams) -> LocalAlignment:
    return local_align(
        adapter,
        region,
        match_score=params.match,
        mismatch_score=params.mismatch,
        gap_opening=params.gap_opening,
        gap_extension=params.gap_extension,
    )


def classify_orientation(
    polya_score: float,
    polyt_score: float,
    polya_min: float,
    polyt_min: float,
    tie_tolerance: float,
) -> Orientation:
    """Call the read orientation from the two adapter scores."""
    if polya_score < polya_min and polyt_score < polyt_min:
        return Orientation.UNRESOLVED
    if abs(polya_score - polyt_score) <= tie_tolerance:
        return Orientation.AMBIGUOUS
    return Orientation.POLY_A if polya_score > polyt_score else Orientation.POLY_T


def align_adapters(
    sequence: str, adapters: AdapterSet, params: Optional[AlignmentParams] = None
) -> AdapterAlignment:
    """
    Align both tail-adjacent adapters against a basecalled DNA read.

    The poly(T)-adjacent adapter is searched in the first ``search_span``
    bases and the poly(A)-adjacent adapter in the last ``search_span`` bases.
    """
    params = params or AlignmentParams()
    span = params.search_span
    head = sequence[:span]
    tail_offset = max(0, len(sequence) - span)
    tail = sequence[tail_offset:]

    polyt = _align(adapters.polyt_adjacent, head, params)
    polya = _align(adapters.polya_adjacent, tail, params)
    polyt_min = params.min_score_for(adapters.polyt_adjacent)
    polya_min = params.min_score_for(adapters.polya_adjacent)

    orientation = classify_orientation(
        polya.score, polyt.score, polya_min, polyt_min, params.tie_tolerance
    )
    return AdapterAlignment(
        orientation=orientation,
        polya_score=polya.score,
        polyt_score=polyt.score,
        polya_anchor=tail_offset + polya.target_start if polya.score >= polya_min else None,
        polyt_anchor=polyt.target_end if polyt.score >= polyt_min else None,
    )
