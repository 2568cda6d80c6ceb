from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Union

import pandas as pd

from tailfinder.logging_utils import get_logger

from ..constants import FAST5_SUFFIX
from ..errors import ReadAccessError
from .fast5_reader import Fast5Reader
from .format_probe import ContainerLayout

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReadHandle:
    """Where to find one read.

    ``read_id`` is None for single-read files and for multi-read files whose
    read list could not be read.
    """

    file_path: Path
    read_id: Optional[str] = None


def discover_fast5_files(fast5_dir: Union[str, Path]) -> List[Path]:
    """
    Recursively list ``.fast5`` files under ``fast5_dir``.

    A path to a single file is returned as a one-element list. The result is
    sorted so that the probed sample read and chunk boundaries are stable
    between runs.
    """
    root = Path(fast5_dir)
    if root.is_file():
        return [root] if root.suffix.lower() == FAST5_SUFFIX else []
    if not root.is_dir():
        raise FileNotFoundError(f"Input directory does not exist: {root}")
    return sorted(p for p in root.rglob(f"*{FAST5_SUFFIX}") if p.is_file())


class ReadLocator:
    """
    Lazy, restartable sequence of :class:`ReadHandle` for every read under a root.

    Each iteration walks the input tree again; multi-read containers are opened
    and their read groups listed as they are reached.
    """

    def __init__(self, fast5_dir: Union[str, Path], layout: ContainerLayout):
        self.fast5_dir = Path(fast5_dir)
        self.layout = layout

    def files(self) -> List[Path]:
        return discover_fast5_files(self.fast5_dir)

    def __iter__(self) -> Iterator[ReadHandle]:
        for fast5_file in self.files():
            if self.layout is ContainerLayout.SINGLE:
                yield ReadHandle(fast5_file)
                continue
            try:
                with Fast5Reader(fast5_file) as reader:
                    read_ids = reader.read_ids()
            except ReadAccessError as exc:
                # one handle without a read id, so the container still gets an NA row
                logger.warning("Cannot list reads in multi-read file %s: %s", fast5_file, exc)
                yield ReadHandle(fast5_file)
                continue
            for read_id in read_ids:
                yield ReadHandle(fast5_file, read_id)


def build_read_index(locator: ReadLocator) -> pd.DataFrame:
    """Flat ``(read_id, fast5_file)`` table of every read the locator yields."""
    rows = [
        {"read_id": handle.read_id, "fast5_file": str(handle.file_path)} for handle in locator
    ]
    return pd.DataFrame(rows, columns=["read_id", "fast5_file"])
