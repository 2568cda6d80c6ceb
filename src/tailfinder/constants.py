from __future__ import annotations

from types import MappingProxyType
from typing import Any, Final, Mapping


## Helpers ##
def _deep_freeze(obj: Any) -> Any:
    """Recursively freeze common containers. Use for constant exports."""
    if isinstance(obj, dict):
        return MappingProxyType({k: _deep_freeze(v) for k, v in obj.items()})
    if isinstance(obj, (list, tuple)):
        return tuple(_deep_freeze(v) for v in obj)
    if isinstance(obj, set):
        return frozenset(_deep_freeze(v) for v in obj)
    return obj  # ints/strs/tuples (already immutable)


## Fast5 layout ##
FAST5_SUFFIX: Final[str] = ".fast5"
MULTI_READ_PREFIX: Final[str] = "read_"
RAW_GROUP: Final[str] = "Raw"
ANALYSES_GROUP: Final[str] = "Analyses"
GLOBAL_KEY_GROUP: Final[str] = "UniqueGlobalKey"
TEMPLATE_SUBGROUP: Final[str] = "BaseCalled_template"
COMPLEMENT_SUBGROUP: Final[str] = "BaseCalled_complement"
BASECALL_PREFIX: Final[str] = "Basecall_"
SEGMENTATION_PREFIX: Final[str] = "Segmentation_"

## Run layout ##
DEFAULT_CSV_FILENAME: Final[str] = "tails.csv"
PLOTS_DIR: Final[str] = "plots"
LOG_SUFFIX: Final[str] = "_tailfinder.log"
CHUNK_SIZE: Final[int] = 4000

## Result columns ##
DNA_COLUMNS: Final[tuple] = (
    "read_id",
    "read_type",
    "tail_is_valid",
    "tail_start",
    "tail_end",
    "samples_per_nt",
    "tail_length",
    "file_path",
    "has_precise_boundary",
)
RNA_COLUMNS: Final[tuple] = (
    "read_id",
    "tail_is_valid",
    "tail_start",
    "tail_end",
    "samples_per_nt",
    "tail_length",
    "tail_adjacent_sequence",
    "file_path",
)

## Adapter sequences ##
# poly(T)-adjacent adapters sit at the read head, directly 5' of a poly(T)
# tail; poly(A)-adjacent adapters sit at the read end, directly 3' of a
# poly(A) tail.
_private_adapter_sets = {
    "cdna": {
        "polyt_adjacent": "ACTTGCCTGTCGCTCTATCTTC",
        "polya_adjacent": "GAAGATAGAGCGACAGGCAAGT",
    },
    "pcr-dna": {
        "polyt_adjacent": "TTTCTGTTGGTGCTGATATTGCTTT",
        "polya_adjacent": "AAAGCAATATCAGCACCAACAGAAA",
    },
}
ADAPTER_SETS: Final[Mapping[str, Mapping[str, str]]] = _deep_freeze(_private_adapter_sets)

## Alignment scoring ##
MATCH_SCORE: Final[int] = 1
MISMATCH_SCORE: Final[int] = -1
GAP_OPENING: Final[int] = 0
GAP_EXTENSION: Final[int] = 1
ALIGNMENT_SEARCH_SPAN: Final[int] = 150
ALIGNMENT_MIN_SCORE_FRACTION: Final[float] = 0.6
ALIGNMENT_TIE_TOLERANCE: Final[int] = 2

## Signal calibration defaults (normalised units, see tools.tail_caller) ##
NORMALISATION_CLIP: Final[float] = 5.0
_private_segmentation_defaults = {
    "rna_polya": {
        "window": 25,
        "min_run": 8,
        "gap_tolerance": 1,
        "level_band": (-0.5, 3.0),
        "max_slope": 0.03,
        "max_std": 0.45,
    },
    "dna_polya": {
        "window": 20,
        "min_run": 6,
        "gap_tolerance": 1,
        "level_band": (-3.0, 0.5),
        "max_slope": 0.035,
        "max_std": 0.5,
    },
    "dna_polyt": {
        "window": 20,
        "min_run": 6,
        "gap_tolerance": 1,
        "level_band": (-0.5, 3.0),
        "max_slope": 0.035,
        "max_std": 0.5,
    },
}
SEGMENTATION_DEFAULTS: Final[Mapping[str, Mapping[str, Any]]] = _deep_freeze(
    _private_segmentation_defaults
)
REFINEMENT_THRESHOLD: Final[float] = 1.2
REFINEMENT_SUSTAIN: Final[int] = 10
REFINEMENT_FLANK: Final[int] = 300

RNA_SEARCH_SAMPLES: Final[int] = 30000
RNA_ADJACENT_BASES: Final[int] = 30
DNA_MAX_TAIL_SAMPLES: Final[int] = 12000
DNA_ANCHOR_SLACK: Final[int] = 200
CALIBRATION_SPAN: Final[int] = 2000
CALIBRATION_MIN_BASES: Final[int] = 20
