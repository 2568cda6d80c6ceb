"""Read access to single-read and multi-read Fast5 containers.

Single-read files keep the read under ``/Raw/Reads/Read_<n>`` with shared
metadata in ``/UniqueGlobalKey``; multi-read files hold one ``/read_<id>``
group per read, each with its own ``Raw``, ``Analyses``, ``channel_id`` and
``context_tags`` groups.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import h5py
import numpy as np

from ..constants import (
    ANALYSES_GROUP,
    BASECALL_PREFIX,
    GLOBAL_KEY_GROUP,
    MULTI_READ_PREFIX,
    RAW_GROUP,
    SEGMENTATION_PREFIX,
    TEMPLATE_SUBGROUP,
)
from ..errors import ReadAccessError

_GROUP_INDEX_RE = re.compile(r"_(\d+)$")


def decode_attr(val: Any) -> str:
    """Decode an HDF5 attribute value (bytes, numpy scalar, str) to ``str``."""
    if isinstance(val, bytes):
        return val.decode("utf-8", errors="replace")
    if isinstance(val, np.ndarray) and val.shape == ():
        return decode_attr(val.item())
    return str(val)


def _attrs_to_dict(group: Optional[h5py.Group]) -> Dict[str, str]:
    if group is None:
        return {}
    return {key: decode_attr(value) for key, value in group.attrs.items()}


def _latest_group(parent: h5py.Group, prefix: str) -> Optional[str]:
    """Name of the highest-numbered child group starting with ``prefix``."""
    names = [name for name in parent.keys() if name.startswith(prefix)]
    if not names:
        return None

    def _index(name: str) -> int:
        match = _GROUP_INDEX_RE.search(name)
        return int(match.group(1)) if match else -1

    return max(names, key=lambda name: (_index(name), name))


class Fast5Read:
    """View over the HDF5 groups that describe one read."""

    def __init__(self, reader: "Fast5Reader", read_id: str, root: h5py.Group, raw: h5py.Group):
        self._reader = reader
        self.read_id = read_id
        self._root = root
        self._raw = raw

    @property
    def source_file(self) -> Path:
        return self._reader.path

    def _metadata_group(self, name: str) -> Optional[h5py.Group]:
        if name in self._root:
            return self._root[name]
        h5 = self._reader.handle
        if GLOBAL_KEY_GROUP in h5 and name in h5[GLOBAL_KEY_GROUP]:
            return h5[GLOBAL_KEY_GROUP][name]
        return None

    def raw_signal(self) -> np.ndarray:
        try:
            signal = self._raw["Signal"][()]
        except KeyError as exc:
            raise ReadAccessError(
                f"Raw signal missing for read {self.read_id} in {self.source_file}"
            ) from exc
        return np.asarray(signal)

    def raw_attrs(self) -> Dict[str, str]:
        return _attrs_to_dict(self._raw)

    def channel_info(self) -> Dict[str, str]:
        return _attrs_to_dict(self._metadata_group("channel_id"))

    def context_tags(self) -> Dict[str, str]:
        return _attrs_to_dict(self._metadata_group("context_tags"))

    def tracking_id(self) -> Dict[str, str]:
        return _attrs_to_dict(self._metadata_group("tracking_id"))

    @property
    def analyses(self) -> Optional[h5py.Group]:
        return self._root[ANALYSES_GROUP] if ANALYSES_GROUP in self._root else None

    def basecall_group_names(self) -> List[str]:
        analyses = self.analyses
        if analyses is None:
            return []
        return sorted(name for name in analyses.keys() if name.startswith(BASECALL_PREFIX))

    def basecall_group(self) -> Tuple[str, h5py.Group]:
        """Latest basecall analysis group as ``(name, group)``."""
        analyses = self.analyses
        name = _latest_group(analyses, BASECALL_PREFIX) if analyses is not None else None
        if name is None:
            raise ReadAccessError(
                f"No basecall analysis for read {self.read_id} in {self.source_file}"
            )
        return name, analyses[name]

    def template_group(self) -> h5py.Group:
        name, group = self.basecall_group()
        if TEMPLATE_SUBGROUP not in group:
            raise ReadAccessError(f"{name} has no {TEMPLATE_SUBGROUP} for read {self.read_id}")
        return group[TEMPLATE_SUBGROUP]

    def fastq(self) -> str:
        template = self.template_group()
        if "Fastq" not in template:
            raise ReadAccessError(f"Fastq missing for read {self.read_id} in {self.source_file}")
        return decode_attr(template["Fastq"][()])

    def sequence(self) -> str:
        lines = self.fastq().strip().split("\n")
        if len(lines) < 2:
            raise ReadAccessError(f"Malformed Fastq record for read {self.read_id}")
        return lines[1].strip()

    def basecall_summary(self) -> Dict[str, str]:
        _, group = self.basecall_group()
        summary = group.get("Summary")
        if summary is None or "basecall_1d_template" not in summary:
            return {}
        return _attrs_to_dict(summary["basecall_1d_template"])

    def segmentation_summary(self) -> Dict[str, str]:
        analyses = self.analyses
        name = _latest_group(analyses, SEGMENTATION_PREFIX) if analyses is not None else None
        if name is None:
            return {}
        summary = analyses[name].get("Summary")
        if summary is None or "segmentation" not in summary:
            return {}
        return _attrs_to_dict(summary["segmentation"])

    def move_dataset(self) -> Optional[np.ndarray]:
        template = self.template_group()
        return np.asarray(template["Move"][()]) if "Move" in template else None

    def events_table(self) -> Optional[np.ndarray]:
        template = self.template_group()
        return template["Events"][()] if "Events" in template else None


class Fast5Reader:
    """
    Open a Fast5 container and hand out :class:`Fast5Read` views.

    Use as a context manager; every dataset access must happen while the
    file is open. Failures to open surface as :class:`ReadAccessError`.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._h5: Optional[h5py.File] = None

    def __enter__(self) -> "Fast5Reader":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if self._h5 is not None:
            return
        try:
            self._h5 = h5py.File(self.path, "r")
        except (OSError, ValueError) as exc:
            raise ReadAccessError(f"Cannot open fast5 file {self.path}: {exc}") from exc

    def close(self) -> None:
        if self._h5 is not None:
            self._h5.close()
            self._h5 = None

    @property
    def handle(self) -> h5py.File:
        if self._h5 is None:
            raise ReadAccessError(f"{self.path} is not open")
        return self._h5

    @property
    def is_multi_read(self) -> bool:
        h5 = self.handle
        if RAW_GROUP in h5:
            return False
        return any(key.startswith(MULTI_READ_PREFIX) for key in h5.keys())

    def read_ids(self) -> List[str]:
        h5 = self.handle
        if self.is_multi_read:
            return [
                key[len(MULTI_READ_PREFIX):]
                for key in h5.keys()
                if key.startswith(MULTI_READ_PREFIX)
            ]
        return [self._single_read_raw()[0]]

    def _single_read_raw(self) -> Tuple[str, h5py.Group]:
        h5 = self.handle
        try:
            reads = h5[RAW_GROUP]["Reads"]
            name = sorted(reads.keys())[0]
        except (KeyError, IndexError) as exc:
            raise ReadAccessError(f"No raw read group in {self.path}") from exc
        raw = reads[name]
        read_id = decode_attr(raw.attrs.get("read_id", name))
        return read_id, raw

    def read(self, read_id: Optional[str] = None) -> Fast5Read:
        """Return the read ``read_id``; ``None`` selects the first read."""
        h5 = self.handle
        if not self.is_multi_read:
            found_id, raw = self._single_read_raw()
            if read_id is not None and read_id != found_id:
                raise ReadAccessError(f"Read {read_id} not found in {self.path}")
            return Fast5Read(self, found_id, h5, raw)

        if read_id is None:
            ids = self.read_ids()
            if not ids:
                raise ReadAccessError(f"No reads in {self.path}")
            read_id = ids[0]
        key = f"{MULTI_READ_PREFIX}{read_id}"
        if key not in h5:
            raise ReadAccessError(f"Read {read_id} not found in {self.path}")
        root = h5[key]
        if RAW_GROUP not in root:
            raise ReadAccessError(f"Read {read_id} has no raw signal in {self.path}")
        return Fast5Read(self, read_id, root, root[RAW_GROUP])
