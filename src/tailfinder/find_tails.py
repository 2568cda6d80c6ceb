from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from tailfinder.logging_utils import detach_file_handlers, get_logger, setup_logging

from .config import RunConfig, load_run_config
from .constants import LOG_SUFFIX
from .informatics.format_probe import probe_experiment
from .informatics.read_locator import ReadLocator, discover_fast5_files
from .readwrite import make_dirs, records_to_dataframe, timestamp_string, write_tails_csv
from .scheduler import run_batch

logger = get_logger(__name__)


def _prepare_save_dir(save_dir: Path) -> tuple[Path, bool]:
    """Create ``save_dir``; fall back on the home directory when that fails."""
    try:
        save_dir.mkdir(parents=True, exist_ok=True)
        return save_dir, False
    except OSError:
        return Path.home(), True


def _log_run_config(cfg: RunConfig) -> None:
    logger.info("fast5_dir: %s", cfg.fast5_dir)
    logger.info("save_dir: %s", cfg.save_dir)
    logger.info("csv_filename: %s", cfg.csv_filename)
    logger.info("num_cores: %s", cfg.num_cores)
    logger.info("chunk_size: %s", cfg.chunk_size)
    logger.info("save_plots: %s", cfg.save_plots)
    logger.info("plot_debug_traces: %s", cfg.plot_debug_traces)
    logger.info("dna_datatype: %s", cfg.dna_datatype.value)
    if cfg.plot_debug_traces and not cfg.save_plots:
        logger.warning("plot_debug_traces has no effect without save_plots; ignoring it")


def run_find_tails(
    cfg: RunConfig, log_level: Union[int, str] = logging.INFO, progress: bool = True
) -> pd.DataFrame:
    """
    Execute one tail-calling run described by ``cfg``.

    Writes ``<save_dir>/<timestamp>_tailfinder.log``, the result CSV and, when
    requested, per-read plots under ``<save_dir>/plots``.

    Raises
    ------
    FileNotFoundError
        If the input path does not exist or holds no fast5 files.
    FormatError
        If the sampled read is not a basecalled 1D read.
    """
    if isinstance(log_level, str):
        log_level = getattr(logging, log_level.upper(), logging.INFO)

    save_dir, fell_back = _prepare_save_dir(Path(cfg.save_dir))
    cfg = cfg.with_save_dir(save_dir)
    log_file = save_dir / f"{timestamp_string()}{LOG_SUFFIX}"
    setup_logging(level=log_level, log_file=log_file)

    try:
        if fell_back:
            logger.warning("Could not create the requested save_dir; writing to %s instead", save_dir)
        logger.info("Starting tail calling")
        _log_run_config(cfg)

        fast5_files = discover_fast5_files(cfg.fast5_dir)
        if not fast5_files:
            raise FileNotFoundError(f"No fast5 files found under {cfg.fast5_dir}")
        logger.info("Found %d fast5 file(s)", len(fast5_files))

        logger.info("Analyzing one of the given fast5 files to check the data format")
        profile = probe_experiment(fast5_files[0])
        for line in profile.describe():
            logger.info(line)

        handles = list(ReadLocator(cfg.fast5_dir, profile.layout))
        logger.info("Found %d read(s) to process", len(handles))

        if cfg.save_plots:
            make_dirs([cfg.plots_dir])

        outcomes = run_batch(
            handles,
            profile,
            cfg.caller_for_run(),
            num_workers=cfg.num_cores,
            chunk_size=cfg.chunk_size,
            progress=progress,
        )
        df = records_to_dataframe([o.record for o in outcomes], profile.experiment_type)
        csv_path = write_tails_csv(df, save_dir / cfg.csv_filename)
        n_valid = int(df["tail_is_valid"].fillna(False).sum())
        logger.info("Valid tails found for %d of %d read(s)", n_valid, len(df))
        logger.info("Results saved to %s", csv_path)
        return df
    except Exception:
        logger.exception("Tail calling aborted")
        raise
    finally:
        detach_file_handlers(log_file)


def find_tails(
    fast5_dir: Union[str, Path, None] = None,
    save_dir: Union[str, Path, None] = None,
    csv_filename: Optional[str] = None,
    num_cores: Optional[int] = None,
    chunk_size: Optional[int] = None,
    save_plots: Optional[bool] = None,
    plot_debug_traces: Optional[bool] = None,
    dna_datatype: Optional[str] = None,
    config_path: Union[str, Path, None] = None,
    log_level: Union[int, str] = logging.INFO,
    progress: bool = True,
) -> pd.DataFrame:
    """Estimate poly(A)/poly(T) tail lengths for every read under ``fast5_dir``.

    Keyword arguments left as ``None`` fall through to ``config_path`` (a YAML
    file) and then to the defaults: ``tails.csv``, one core, chunks of 4000
    reads, no plots and the ``cdna`` adapter set.

    Parameters
    ----------
    fast5_dir : str or Path
        Directory searched recursively for ``.fast5`` files.
    save_dir : str or Path
        Output directory (created when missing).
    csv_filename : str, optional
        Name of the result CSV inside ``save_dir``.
    num_cores : int, optional
        Worker processes.
    chunk_size : int, optional
        Reads submitted to the pool at once.
    save_plots : bool, optional
        Save a PNG per read under ``save_dir/plots``.
    plot_debug_traces : bool, optional
        Add segmentation window traces to the plots; needs ``save_plots``.
    dna_datatype : {"cdna", "pcr-dna"}, optional
        Library protocol selecting the adapter sequences for DNA reads.
    config_path : str or Path, optional
        YAML file with run settings and calibration overrides.
    log_level : int or str
        Logging level for console and log file.
    progress : bool
        Show per-chunk progress bars.

    Returns
    -------
    pandas.DataFrame
        One row per read.
    """
    cfg = load_run_config(
        config_path,
        fast5_dir=fast5_dir,
        save_dir=save_dir,
        csv_filename=csv_filename,
        num_cores=num_cores,
        chunk_size=chunk_size,
        save_plots=save_plots,
        plot_debug_traces=plot_debug_traces,
        dna_datatype=dna_datatype,
    )
    return run_find_tails(cfg, log_level=log_level, progress=progress)
