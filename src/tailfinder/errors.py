"""Error taxonomy for tail calling.

Only :class:`FormatError` is fatal for a run. Every other problem is local to
one read and is reported as a :class:`FailureKind` on the read's outcome.
"""

from __future__ import annotations

from enum import Enum


class TailfinderError(Exception):
    """Base class for tailfinder errors."""


class FormatError(TailfinderError):
    """The sampled read does not match a supported data layout.

    Raised by the format probe before any worker is started; the detected
    profile is applied to every read, so an unsupported sample aborts the run.
    """


class ReadAccessError(TailfinderError, OSError):
    """A read container or one of its datasets cannot be read."""


class ConfigError(TailfinderError, ValueError):
    """Invalid run or caller configuration."""


class FailureKind(str, Enum):
    IO = "io"
    ALIGNMENT = "alignment"
    SEGMENTATION = "segmentation"
    REFINEMENT = "refinement"
    INTERNAL = "internal"

    def __str__(self) -> str:
        return self.value
