"""Utilities for safe multiprocessing across macOS and Linux."""

from __future__ import annotations

import os


def resolve_n_jobs(n_jobs: int) -> int:
    """Resolve n_jobs to a concrete positive worker count.

    Parameters
    ----------
    n_jobs:
        Number of workers. Negative values map to ``os.cpu_count()``.
        Zero is treated as 1.
    """
    if n_jobs < 0:
        return os.cpu_count() or 1
    return max(1, n_jobs)


def configure_worker_threads(n_threads: int = 1) -> None:
    """Cap BLAS/OpenMP threads inside a tail-calling worker process.

    Pass as the ``initializer`` to ``ProcessPoolExecutor`` so it runs before
    the per-read work imports numpy::

        ProcessPoolExecutor(
            max_workers=n,
            initializer=configure_worker_threads,
            initargs=(1,),
        )

    Every worker handles one read at a time, so nested BLAS parallelism only
    oversubscribes the cores requested through ``num_cores``.

    Notes
    -----
    Environment variables are set unconditionally (not via ``setdefault``)
    because worker processes inherit the parent's environment; an inherited
    ``OMP_NUM_THREADS=8`` with 8 workers would otherwise give 64 threads.
    """
    thread_str = str(n_threads)
    os.environ["OMP_NUM_THREADS"] = thread_str
    os.environ["MKL_NUM_THREADS"] = thread_str
    os.environ["OPENBLAS_NUM_THREADS"] = thread_str
    os.environ["BLIS_NUM_THREADS"] = thread_str
    os.environ["NUMEXPR_NUM_THREADS"] = thread_str
