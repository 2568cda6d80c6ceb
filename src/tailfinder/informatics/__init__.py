from .fast5_reader import Fast5Read, Fast5Reader
from .format_probe import ExperimentProfile, probe_experiment
from .read_locator import ReadHandle, ReadLocator, build_read_index, discover_fast5_files
from .signal_extraction import ExtractedRead, MoveTable, extract_read

__all__ = [
    "ExperimentProfile",
    "ExtractedRead",
    "Fast5Read",
    "Fast5Reader",
    "MoveTable",
    "ReadHandle",
    "ReadLocator",
    "build_read_index",
    "discover_fast5_files",
    "extract_read",
    "probe_experiment",
]
