## readwrite ##
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterable, Union

import pandas as pd

from .informatics.format_probe import ExperimentType
from .tools.tail_caller import TailRecord
from .constants import DNA_COLUMNS, RNA_COLUMNS

_INT_COLUMNS = ("tail_start", "tail_end", "tail_length")
_BOOL_COLUMNS = ("tail_is_valid", "has_precise_boundary")


######################################################################################################
## Datetime functionality
def timestamp_string() -> str:
    """
    Each time this is called, it returns the current date and time as
    ``YYYY-mm-dd_HH-MM-SS`` (safe for file names)
    """
    return datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
######################################################################################################

######################################################################################################
## General file and directory handling
def make_dirs(directories: Union[str, Path, Iterable[Union[str, Path]]]) -> None:
    """
    Create one or multiple directories.

    Parameters
    ----------
    directories : str | Path | list/iterable of str | Path
        Paths of directories to create. If a file path is passed,
        the parent directory is created.

    Returns
    -------
    None
    """

    # allow user to pass a single string/Path
    if isinstance(directories, (str, Path)):
        directories = [directories]

    for d in directories:
        p = Path(d)

        # If someone passes in a file path, make its parent
        if p.suffix:
            p = p.parent

        p.mkdir(parents=True, exist_ok=True)
######################################################################################################

######################################################################################################
## Result tables
def records_to_dataframe(
    records: Iterable[TailRecord], experiment_type: ExperimentType
) -> pd.DataFrame:
    """
    One row per record with the column set of the experiment type.

    Integer and boolean columns use pandas nullable dtypes so that missing
    values stay NA instead of turning the column into floats/objects.
    """
    columns = list(RNA_COLUMNS if experiment_type is ExperimentType.RNA else DNA_COLUMNS)
    df = pd.DataFrame([record.to_row(experiment_type) for record in records], columns=columns)
    for col in _INT_COLUMNS:
        if col in df.columns:
            df[col] = df[col].astype("Int64")
    for col in _BOOL_COLUMNS:
        if col in df.columns:
            df[col] = df[col].astype("boolean")
    df["samples_per_nt"] = df["samples_per_nt"].astype("Float64")
    return df


def write_tails_csv(df: pd.DataFrame, csv_path: Union[str, Path]) -> Path:
    """Write the result table; missing values are written as ``NA``."""
    csv_path = Path(csv_path)
    make_dirs(csv_path)
    df.to_csv(csv_path, index=False, na_rep="NA")
    return csv_path
######################################################################################################
