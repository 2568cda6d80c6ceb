"""Chunked, unordered fan-out of per-read tail calling over a worker pool."""

from __future__ import annotations

import math
from collections import Counter
from concurrent.futures import Future, ProcessPoolExecutor, as_completed
from concurrent.futures.process import BrokenProcessPool
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from tqdm import tqdm

from tailfinder.logging_utils import get_logger

from .config import CallerConfig
from .constants import CHUNK_SIZE
from .errors import FailureKind
from .informatics.format_probe import ExperimentProfile
from .informatics.read_locator import ReadHandle
from .parallel_utils import configure_worker_threads, resolve_n_jobs
from .tools.tail_caller import ReadOutcome, TailRecord, process_read

logger = get_logger(__name__)

Worker = Callable[[ReadHandle, ExperimentProfile, CallerConfig], ReadOutcome]


@dataclass(frozen=True)
class ChunkPlan:
    """Handles ``[start, stop)`` of the read list, processed as one unit.

    ``duplicate_last`` marks a final chunk holding a single read; its work item
    is dispatched twice and the second result dropped.
    """

    index: int
    start: int
    stop: int
    duplicate_last: bool = False

    @property
    def size(self) -> int:
        return self.stop - self.start


@dataclass(frozen=True)
class _Slot:
    handle: ReadHandle
    is_duplicate: bool = False


def plan_chunks(total: int, chunk_size: int = CHUNK_SIZE) -> List[ChunkPlan]:
    """Split ``total`` reads into ``ceil(total / chunk_size)`` chunks."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    n_chunks = math.ceil(total / chunk_size) if total > 0 else 0
    plans = []
    for idx in range(n_chunks):
        start = idx * chunk_size
        stop = min(total, start + chunk_size)
        plans.append(
            ChunkPlan(idx, start, stop, duplicate_last=idx == n_chunks - 1 and stop - start == 1)
        )
    return plans


def _slots(plan: ChunkPlan, handles: Sequence[ReadHandle]) -> List[_Slot]:
    slots = [_Slot(handle) for handle in handles[plan.start : plan.stop]]
    if plan.duplicate_last:
        slots.append(_Slot(slots[-1].handle, is_duplicate=True))
    return slots


def _na_outcome(handle: ReadHandle) -> ReadOutcome:
    return ReadOutcome(TailRecord.na(handle.read_id, str(handle.file_path)), FailureKind.INTERNAL)


def _run_chunk_serial(
    slots: List[_Slot], worker: Worker, profile: ExperimentProfile, config: CallerConfig, desc: str, progress: bool
) -> List[ReadOutcome]:
    outcomes = []
    for slot in tqdm(slots, desc=desc, disable=not progress):
        if slot.is_duplicate:
            continue
        try:
            outcomes.append(worker(slot.handle, profile, config))
        except Exception:
            logger.debug("Worker failed on %s", slot.handle, exc_info=True)
            outcomes.append(_na_outcome(slot.handle))
    return outcomes


def _new_pool(n_workers: int) -> ProcessPoolExecutor:
    return ProcessPoolExecutor(
        max_workers=n_workers, initializer=configure_worker_threads, initargs=(1,)
    )


def _run_chunk_pool(
    executor: ProcessPoolExecutor,
    slots: List[_Slot],
    worker: Worker,
    profile: ExperimentProfile,
    config: CallerConfig,
    desc: str,
    progress: bool,
) -> Tuple[List[ReadOutcome], List[_Slot]]:
    """
    Drain one chunk through ``executor``.

    Returns the outcomes collected and the slots that never produced a result
    because a worker process died and broke the pool.
    """
    futures: Dict[Future, _Slot] = {}
    unfinished: List[_Slot] = []
    try:
        for slot in slots:
            futures[executor.submit(worker, slot.handle, profile, config)] = slot
    except BrokenProcessPool:
        unfinished.extend(slots[len(futures) :])

    outcomes = []
    for future in tqdm(as_completed(futures), desc=desc, total=len(futures), disable=not progress):
        slot = futures[future]
        try:
            outcome = future.result()
        except BrokenProcessPool:
            unfinished.append(slot)
            continue
        except Exception:
            logger.debug("Worker failed on %s", slot.handle, exc_info=True)
            outcome = _na_outcome(slot.handle)
        if not slot.is_duplicate:
            outcomes.append(outcome)
    return outcomes, [slot for slot in unfinished if not slot.is_duplicate]


def _rerun_isolated(
    slots: List[_Slot], worker: Worker, profile: ExperimentProfile, config: CallerConfig
) -> List[ReadOutcome]:
    """
    Re-run reads stranded by a broken pool one at a time in a single-process pool.

    A read that kills its worker again is recorded as NA and the pool is
    replaced before the next read.
    """
    outcomes = []
    executor: Optional[ProcessPoolExecutor] = None
    try:
        for slot in slots:
            if executor is None:
                executor = _new_pool(1)
            try:
                outcomes.append(executor.submit(worker, slot.handle, profile, config).result())
            except BrokenProcessPool:
                logger.warning("Worker process died on %s; recording it as NA", slot.handle)
                outcomes.append(_na_outcome(slot.handle))
                executor.shutdown()
                executor = None
            except Exception:
                logger.debug("Worker failed on %s", slot.handle, exc_info=True)
                outcomes.append(_na_outcome(slot.handle))
    finally:
        if executor is not None:
            executor.shutdown()
    return outcomes


def summarize_failures(outcomes: Iterable[ReadOutcome]) -> Counter:
    return Counter(outcome.failure for outcome in outcomes if outcome.failure is not None)


def run_batch(
    handles: Iterable[ReadHandle],
    profile: ExperimentProfile,
    config: CallerConfig,
    num_workers: int = 1,
    chunk_size: int = CHUNK_SIZE,
    worker: Worker = process_read,
    progress: bool = True,
) -> List[ReadOutcome]:
    """
    Call every read, one chunk at a time.

    Reads inside a chunk run in parallel and are collected in completion
    order; a chunk is fully drained before the next one is submitted. One
    process pool serves the whole run and is shut down on exit, including
    when an exception escapes. If a worker process dies, the reads of that
    chunk still pending are re-run one at a time, the read that kills its
    worker becomes an NA record, and a fresh pool takes the next chunk.

    Parameters
    ----------
    handles : iterable of ReadHandle
        Every read of the run.
    profile : ExperimentProfile
        Detected data layout, shipped unchanged to every worker.
    config : CallerConfig
        Caller settings, shipped unchanged to every worker.
    num_workers : int
        Pool size. ``1`` runs in-process; negative values use all cores.
    chunk_size : int
        Maximum number of reads submitted at once.
    worker : callable
        Per-read function; must be importable at module level to be pickled.
    progress : bool
        Show a tqdm bar per chunk.

    Returns
    -------
    list of ReadOutcome
        Exactly one outcome per handle, in no particular order.
    """
    handles = list(handles)
    plans = plan_chunks(len(handles), chunk_size)
    n_workers = resolve_n_jobs(num_workers)
    logger.info(
        "Processing %d read(s) in %d chunk(s) of at most %d using %d worker(s)",
        len(handles),
        len(plans),
        chunk_size,
        n_workers,
    )

    outcomes: List[ReadOutcome] = []
    if n_workers == 1:
        for plan in plans:
            desc = f"Chunk {plan.index + 1}/{len(plans)}"
            outcomes.extend(
                _run_chunk_serial(_slots(plan, handles), worker, profile, config, desc, progress)
            )
    else:
        executor = _new_pool(n_workers)
        try:
            for plan in plans:
                desc = f"Chunk {plan.index + 1}/{len(plans)}"
                chunk_outcomes, unfinished = _run_chunk_pool(
                    executor, _slots(plan, handles), worker, profile, config, desc, progress
                )
                outcomes.extend(chunk_outcomes)
                if unfinished:
                    logger.warning(
                        "Worker pool broke in chunk %d; re-running %d unfinished read(s) one at a time",
                        plan.index + 1,
                        len(unfinished),
                    )
                    executor.shutdown()
                    outcomes.extend(_rerun_isolated(unfinished, worker, profile, config))
                    executor = _new_pool(n_workers)
        finally:
            executor.shutdown()

    failures = summarize_failures(outcomes)
    for kind in FailureKind:
        if failures[kind]:
            logger.info("%d read(s) ended with %s failure", failures[kind], kind)
    return outcomes
