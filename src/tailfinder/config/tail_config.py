# tail_config.py
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from ..constants import (
    ADAPTER_SETS,
    ALIGNMENT_MIN_SCORE_FRACTION,
    ALIGNMENT_SEARCH_SPAN,
    ALIGNMENT_TIE_TOLERANCE,
    CALIBRATION_MIN_BASES,
    CALIBRATION_SPAN,
    CHUNK_SIZE,
    DEFAULT_CSV_FILENAME,
    DNA_ANCHOR_SLACK,
    DNA_MAX_TAIL_SAMPLES,
    GAP_EXTENSION,
    GAP_OPENING,
    MATCH_SCORE,
    MISMATCH_SCORE,
    NORMALISATION_CLIP,
    PLOTS_DIR,
    REFINEMENT_FLANK,
    REFINEMENT_SUSTAIN,
    REFINEMENT_THRESHOLD,
    RNA_ADJACENT_BASES,
    RNA_SEARCH_SAMPLES,
    SEGMENTATION_DEFAULTS,
)
from ..errors import ConfigError


# -------------------------
# Utility parsing functions
# -------------------------
def _parse_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    s = str(v).strip().lower()
    if s in ("1", "true", "t", "yes", "y", "on"):
        return True
    if s in ("0", "false", "f", "no", "n", "off", ""):
        return False
    try:
        return float(s) != 0.0
    except ValueError:
        return False


def _parse_numeric(v: Any, fallback: Any = None) -> Any:
    if v is None:
        return fallback
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, (int, float)):
        return v
    s = str(v).strip()
    if s == "" or s.lower() == "none":
        return fallback
    try:
        return int(s)
    except ValueError:
        try:
            return float(s)
        except ValueError:
            return fallback


def _parse_band(v: Any, fallback: Tuple[float, float]) -> Tuple[float, float]:
    if v is None:
        return fallback
    if isinstance(v, str):
        parts = [p.strip() for p in v.strip("[]() ").split(",") if p.strip()]
    else:
        parts = list(v)
    if len(parts) != 2:
        raise ConfigError(f"level_band needs exactly two values, got {v!r}")
    low, high = (float(_parse_numeric(p)) for p in parts)
    if low > high:
        raise ConfigError(f"level_band lower bound {low} exceeds upper bound {high}")
    return (low, high)


class ProtocolKind(str, Enum):
    """Library protocol; selects the adapter sequences used for DNA reads."""

    CDNA = "cdna"
    PCR_DNA = "pcr-dna"

    @classmethod
    def parse(cls, value: Union[str, "ProtocolKind", None]) -> "ProtocolKind":
        if value is None:
            return cls.CDNA
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "-")
        for member in cls:
            if member.value == key:
                return member
        raise ConfigError(
            f"Unknown dna_datatype {value!r}; expected one of {[m.value for m in cls]}"
        )


@dataclass(frozen=True)
class AdapterSet:
    name: str
    polyt_adjacent: str
    polya_adjacent: str

    @classmethod
    def for_protocol(cls, protocol: ProtocolKind) -> "AdapterSet":
        seqs = ADAPTER_SETS[protocol.value]
        return cls(
            name=protocol.value,
            polyt_adjacent=seqs["polyt_adjacent"],
            polya_adjacent=seqs["polya_adjacent"],
        )


@dataclass(frozen=True)
class SegmentationParams:
    """Thresholds for the flat-run scan over one tail type."""

    window: int = 25
    min_run: int = 8
    gap_tolerance: int = 1
    level_band: Tuple[float, float] = (-0.5, 3.0)
    max_slope: float = 0.03
    max_std: float = math.inf

    def __post_init__(self) -> None:
        if self.window < 2:
            raise ConfigError(f"window must be >= 2, got {self.window}")
        if self.min_run < 1:
            raise ConfigError(f"min_run must be >= 1, got {self.min_run}")
        if self.gap_tolerance < 0:
            raise ConfigError(f"gap_tolerance must be >= 0, got {self.gap_tolerance}")

    @classmethod
    def from_mapping(
        cls, raw: Optional[Mapping[str, Any]], base: Optional["SegmentationParams"] = None
    ) -> "SegmentationParams":
        base = base or cls()
        raw = raw or {}
        return cls(
            window=int(_parse_numeric(raw.get("window"), base.window)),
            min_run=int(_parse_numeric(raw.get("min_run"), base.min_run)),
            gap_tolerance=int(_parse_numeric(raw.get("gap_tolerance"), base.gap_tolerance)),
            level_band=_parse_band(raw.get("level_band"), base.level_band),
            max_slope=float(_parse_numeric(raw.get("max_slope"), base.max_slope)),
            max_std=float(_parse_numeric(raw.get("max_std"), base.max_std)),
        )


@dataclass(frozen=True)
class RefinementParams:
    threshold: float = REFINEMENT_THRESHOLD
    sustain: int = REFINEMENT_SUSTAIN
    flank: int = REFINEMENT_FLANK

    def __post_init__(self) -> None:
        if self.sustain < 1:
            raise ConfigError(f"sustain must be >= 1, got {self.sustain}")
        if self.flank < 0:
            raise ConfigError(f"flank must be >= 0, got {self.flank}")

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "RefinementParams":
        raw = raw or {}
        return cls(
            threshold=float(_parse_numeric(raw.get("threshold"), REFINEMENT_THRESHOLD)),
            sustain=int(_parse_numeric(raw.get("sustain"), REFINEMENT_SUSTAIN)),
            flank=int(_parse_numeric(raw.get("flank"), REFINEMENT_FLANK)),
        )


@dataclass(frozen=True)
class AlignmentParams:
    """Local alignment scoring plus orientation classification thresholds.

    ``min_score`` overrides ``min_score_fraction`` (a fraction of the adapter
    length) when set.
    """

    match: int = MATCH_SCORE
    mismatch: int = MISMATCH_SCORE
    gap_opening: int = GAP_OPENING
    gap_extension: int = GAP_EXTENSION
    search_span: int = ALIGNMENT_SEARCH_SPAN
    min_score_fraction: float = ALIGNMENT_MIN_SCORE_FRACTION
    min_score: Optional[int] = None
    tie_tolerance: int = ALIGNMENT_TIE_TOLERANCE

    def min_score_for(self, adapter: str) -> float:
        if self.min_score is not None:
            return self.min_score
        return self.min_score_fraction * len(adapter)

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "AlignmentParams":
        raw = raw or {}
        return cls(
            match=int(_parse_numeric(raw.get("match"), MATCH_SCORE)),
            mismatch=int(_parse_numeric(raw.get("mismatch"), MISMATCH_SCORE)),
            gap_opening=int(_parse_numeric(raw.get("gap_opening"), GAP_OPENING)),
            gap_extension=int(_parse_numeric(raw.get("gap_extension"), GAP_EXTENSION)),
            search_span=int(_parse_numeric(raw.get("search_span"), ALIGNMENT_SEARCH_SPAN)),
            min_score_fraction=float(
                _parse_numeric(raw.get("min_score_fraction"), ALIGNMENT_MIN_SCORE_FRACTION)
            ),
            min_score=_parse_numeric(raw.get("min_score"), None),
            tie_tolerance=int(_parse_numeric(raw.get("tie_tolerance"), ALIGNMENT_TIE_TOLERANCE)),
        )


def _default_segmentation(kind: str) -> SegmentationParams:
    return SegmentationParams(**dict(SEGMENTATION_DEFAULTS[kind]))


@dataclass(frozen=True)
class CallerConfig:
    """Per-read algorithm settings shipped to every worker."""

    rna_polya: SegmentationParams = field(default_factory=lambda: _default_segmentation("rna_polya"))
    dna_polya: SegmentationParams = field(default_factory=lambda: _default_segmentation("dna_polya"))
    dna_polyt: SegmentationParams = field(default_factory=lambda: _default_segmentation("dna_polyt"))
    refinement: RefinementParams = field(default_factory=RefinementParams)
    alignment: AlignmentParams = field(default_factory=AlignmentParams)
    protocol: ProtocolKind = ProtocolKind.CDNA
    normalisation_clip: float = NORMALISATION_CLIP
    rna_search_samples: int = RNA_SEARCH_SAMPLES
    rna_adjacent_bases: int = RNA_ADJACENT_BASES
    dna_max_tail_samples: int = DNA_MAX_TAIL_SAMPLES
    dna_anchor_slack: int = DNA_ANCHOR_SLACK
    calibration_span: int = CALIBRATION_SPAN
    calibration_min_bases: int = CALIBRATION_MIN_BASES
    plot_dir: Optional[Path] = None
    plot_debug_traces: bool = False

    @property
    def adapters(self) -> AdapterSet:
        return AdapterSet.for_protocol(self.protocol)

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Any]]) -> "CallerConfig":
        raw = raw or {}
        seg = raw.get("segmentation") or {}
        return cls(
            rna_polya=SegmentationParams.from_mapping(
                seg.get("rna_polya"), _default_segmentation("rna_polya")
            ),
            dna_polya=SegmentationParams.from_mapping(
                seg.get("dna_polya"), _default_segmentation("dna_polya")
            ),
            dna_polyt=SegmentationParams.from_mapping(
                seg.get("dna_polyt"), _default_segmentation("dna_polyt")
            ),
            refinement=RefinementParams.from_mapping(raw.get("refinement")),
            alignment=AlignmentParams.from_mapping(raw.get("alignment")),
            protocol=ProtocolKind.parse(raw.get("dna_datatype")),
            normalisation_clip=float(
                _parse_numeric(raw.get("normalisation_clip"), NORMALISATION_CLIP)
            ),
            rna_search_samples=int(_parse_numeric(raw.get("rna_search_samples"), RNA_SEARCH_SAMPLES)),
            rna_adjacent_bases=int(_parse_numeric(raw.get("rna_adjacent_bases"), RNA_ADJACENT_BASES)),
            dna_max_tail_samples=int(
                _parse_numeric(raw.get("dna_max_tail_samples"), DNA_MAX_TAIL_SAMPLES)
            ),
            dna_anchor_slack=int(_parse_numeric(raw.get("dna_anchor_slack"), DNA_ANCHOR_SLACK)),
            calibration_span=int(_parse_numeric(raw.get("calibration_span"), CALIBRATION_SPAN)),
            calibration_min_bases=int(
                _parse_numeric(raw.get("calibration_min_bases"), CALIBRATION_MIN_BASES)
            ),
        )


@dataclass(frozen=True)
class RunConfig:
    """Everything one ``find_tails`` run needs."""

    fast5_dir: Path
    save_dir: Path
    csv_filename: str = DEFAULT_CSV_FILENAME
    num_cores: int = 1
    chunk_size: int = CHUNK_SIZE
    save_plots: bool = False
    plot_debug_traces: bool = False
    caller: CallerConfig = field(default_factory=CallerConfig)

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ConfigError(f"chunk_size must be >= 1, got {self.chunk_size}")

    @property
    def dna_datatype(self) -> ProtocolKind:
        return self.caller.protocol

    @property
    def plots_dir(self) -> Path:
        return Path(self.save_dir) / PLOTS_DIR

    def with_save_dir(self, save_dir: Union[str, Path]) -> "RunConfig":
        return replace(self, save_dir=Path(save_dir))

    def caller_for_run(self) -> CallerConfig:
        """Caller config with the plot sink wired in when plots are requested."""
        if not self.save_plots:
            return replace(self.caller, plot_dir=None, plot_debug_traces=False)
        return replace(
            self.caller,
            plot_dir=self.plots_dir,
            plot_debug_traces=self.plot_debug_traces,
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "RunConfig":
        missing = [k for k in ("fast5_dir", "save_dir") if not raw.get(k)]
        if missing:
            raise ConfigError(f"Missing required config keys: {missing}")
        return cls(
            fast5_dir=Path(raw["fast5_dir"]),
            save_dir=Path(raw["save_dir"]),
            csv_filename=str(raw.get("csv_filename") or DEFAULT_CSV_FILENAME),
            num_cores=int(_parse_numeric(raw.get("num_cores"), 1)),
            chunk_size=int(_parse_numeric(raw.get("chunk_size"), CHUNK_SIZE)),
            save_plots=_parse_bool(raw.get("save_plots")),
            plot_debug_traces=_parse_bool(raw.get("plot_debug_traces")),
            caller=CallerConfig.from_mapping(raw),
        )


def load_run_config(path: Union[str, Path, None] = None, **overrides: Any) -> RunConfig:
    """
    Build a :class:`RunConfig` from an optional YAML file plus keyword overrides.

    Overrides whose value is ``None`` are ignored, so CLI options that were not
    given fall through to the file (and then to the defaults).
    """
    raw: Dict[str, Any] = {}
    if path is not None:
        with open(path) as fh:
            loaded = yaml.safe_load(fh) or {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file {path} must contain a mapping at top level")
        raw.update(loaded)
    raw.update({k: v for k, v in overrides.items() if v is not None})
    return RunConfig.from_mapping(raw)
