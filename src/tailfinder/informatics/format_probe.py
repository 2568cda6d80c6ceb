from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union

from tailfinder.logging_utils import get_logger

from ..constants import COMPLEMENT_SUBGROUP
from ..errors import FormatError, ReadAccessError
from .fast5_reader import Fast5Read, Fast5Reader, decode_attr

logger = get_logger(__name__)

_NOT_1D_RE = re.compile(r"Basecall_(2D|1D_2D|1D2)", re.IGNORECASE)


class Basecaller(str, Enum):
    ALBACORE = "albacore"
    GUPPY = "guppy"


class BasecallModel(str, Enum):
    STANDARD = "standard"
    FLIPFLOP = "flipflop"


class ContainerLayout(str, Enum):
    SINGLE = "single"
    MULTI = "multi"


class ExperimentType(str, Enum):
    RNA = "rna"
    DNA = "dna"


@dataclass(frozen=True)
class ExperimentProfile:
    """Data properties detected once from a sample read and applied to all reads."""

    basecaller: Basecaller
    model: BasecallModel
    layout: ContainerLayout
    experiment_type: ExperimentType
    read_is_1d: bool

    @property
    def is_multi_read(self) -> bool:
        return self.layout is ContainerLayout.MULTI

    @property
    def is_rna(self) -> bool:
        return self.experiment_type is ExperimentType.RNA

    def describe(self) -> list[str]:
        """Human-readable summary lines for the run log."""
        lines = [
            f"The data has been basecalled using {self.basecaller.value.capitalize()}.",
            (
                "Flipflop model was used during basecalling."
                if self.model is BasecallModel.FLIPFLOP
                else "Standard model was used during basecalling."
            ),
            (
                "The reads are packed in multi-fast5 file(s)."
                if self.is_multi_read
                else "Every read is in a single fast5 file of its own."
            ),
        ]
        if self.is_rna:
            lines.append("The experiment type is RNA, so we will search for poly(A) tails.")
        else:
            lines.append(
                "The experiment type is DNA, so we will search for both poly(A) and poly(T) tails."
            )
        lines.append("The reads are 1D reads." if self.read_is_1d else "The reads are not 1D.")
        return lines


def detect_basecaller(read: Fast5Read) -> Basecaller:
    _, group = read.basecall_group()
    name = " ".join(
        decode_attr(group.attrs.get(key, "")) for key in ("name", "software_name")
    ).lower()
    if "albacore" in name:
        return Basecaller.ALBACORE
    if "guppy" in name or "minknow" in name:
        return Basecaller.GUPPY
    # No software tag: fall back on the dataset the basecaller writes
    if read.move_dataset() is not None:
        return Basecaller.GUPPY
    return Basecaller.ALBACORE


def detect_model(read: Fast5Read) -> BasecallModel:
    summary = read.basecall_summary()
    if summary.get("model_type", "").lower() == "flipflop":
        return BasecallModel.FLIPFLOP
    if read.move_dataset() is not None and read.events_table() is None:
        return BasecallModel.FLIPFLOP
    return BasecallModel.STANDARD


def detect_experiment_type(read: Fast5Read) -> ExperimentType:
    tags = read.context_tags()
    experiment = tags.get("experiment_type", "").strip().lower()
    if experiment:
        return ExperimentType.RNA if experiment == "rna" else ExperimentType.DNA
    kit = tags.get("sequencing_kit", "") or tags.get("experiment_kit", "")
    return ExperimentType.RNA if "rna" in kit.lower() else ExperimentType.DNA


def detect_read_is_1d(read: Fast5Read) -> bool:
    names = read.basecall_group_names()
    if not names or any(_NOT_1D_RE.match(name) for name in names):
        return False
    _, group = read.basecall_group()
    return COMPLEMENT_SUBGROUP not in group and "BaseCalled_2D" not in group


def probe_experiment(fast5_path: Union[str, Path]) -> ExperimentProfile:
    """
    Inspect the first read of ``fast5_path`` and return its :class:`ExperimentProfile`.

    Raises
    ------
    FormatError
        If the sample cannot be read, carries no basecall analysis, or is not
        a 1D read. The profile applies to the whole run, so this is fatal.
    """
    try:
        with Fast5Reader(fast5_path) as reader:
            layout = ContainerLayout.MULTI if reader.is_multi_read else ContainerLayout.SINGLE
            read = reader.read()
            if not read.basecall_group_names():
                raise FormatError(
                    f"Read {read.read_id} in {fast5_path} has not been basecalled."
                )
            read_is_1d = detect_read_is_1d(read)
            if not read_is_1d:
                raise FormatError(
                    "The reads are not 1D. Currently, only 1D reads are supported; "
                    f"sample file: {fast5_path}"
                )
            profile = ExperimentProfile(
                basecaller=detect_basecaller(read),
                model=detect_model(read),
                layout=layout,
                experiment_type=detect_experiment_type(read),
                read_is_1d=read_is_1d,
            )
    except ReadAccessError as exc:
        raise FormatError(f"Could not inspect sample read in {fast5_path}: {exc}") from exc

    logger.debug("Detected profile %s from %s", profile, fast5_path)
    return profile
