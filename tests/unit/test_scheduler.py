import math
import os
from pathlib import Path

import pytest

from tailfinder.config import CallerConfig
from tailfinder.errors import FailureKind
from tailfinder.informatics.format_probe import (
    BasecallModel,
    Basecaller,
    ContainerLayout,
    ExperimentProfile,
    ExperimentType,
)
from tailfinder.informatics.read_locator import ReadHandle
from tailfinder.scheduler import plan_chunks, run_batch, summarize_failures
from tailfinder.tools.tail_caller import ReadOutcome, TailRecord

PROFILE = ExperimentProfile(
    basecaller=Basecaller.GUPPY,
    model=BasecallModel.FLIPFLOP,
    layout=ContainerLayout.MULTI,
    experiment_type=ExperimentType.DNA,
    read_is_1d=True,
)


def _echo_worker(handle, profile, config):
    n = int(handle.read_id.split("-")[1])
    record = TailRecord(
        read_id=handle.read_id,
        file_path=str(handle.file_path),
        read_type="polyA",
        tail_is_valid=True,
        tail_start=n,
        tail_end=n + 100,
        samples_per_nt=10.0,
        tail_length=10,
        has_precise_boundary=True,
    )
    return ReadOutcome(record)


def _flaky_worker(handle, profile, config):
    if handle.read_id == "read-3":
        raise ValueError("worker blew up")
    return _echo_worker(handle, profile, config)


def _crashing_worker(handle, profile, config):
    if handle.read_id == "read-1":
        os._exit(1)
    return _echo_worker(handle, profile, config)


def _handles(n):
    return [ReadHandle(Path("batch.fast5"), f"read-{i}") for i in range(n)]


@pytest.mark.parametrize("total, chunk", [(0, 10), (1, 10), (10, 10), (11, 10), (4001, 4000), (25, 7)])
def test_plan_chunks_count(total, chunk):
    plans = plan_chunks(total, chunk)

    assert len(plans) == math.ceil(total / chunk)
    assert sum(p.size for p in plans) == total
    assert all(p.size <= chunk for p in plans)


def test_plan_chunks_flags_single_leftover():
    plans = plan_chunks(4001, 4000)

    assert [(p.start, p.stop) for p in plans] == [(0, 4000), (4000, 4001)]
    assert [p.duplicate_last for p in plans] == [False, True]
    assert not any(p.duplicate_last for p in plan_chunks(4002, 4000))


def test_plan_chunks_rejects_bad_size():
    with pytest.raises(ValueError):
        plan_chunks(10, 0)


def test_single_leftover_read_yields_one_record():
    outcomes = run_batch(
        _handles(4001), PROFILE, CallerConfig(), num_workers=1, chunk_size=4000, worker=_echo_worker, progress=False
    )

    ids = [o.record.read_id for o in outcomes]
    assert len(ids) == 4001
    assert len(set(ids)) == 4001
    assert ids.count("read-4000") == 1


def test_pool_dedupes_duplicate_and_is_order_independent():
    handles = _handles(9)

    first = run_batch(handles, PROFILE, CallerConfig(), num_workers=2, chunk_size=4, worker=_echo_worker, progress=False)
    second = run_batch(handles, PROFILE, CallerConfig(), num_workers=3, chunk_size=4, worker=_echo_worker, progress=False)
    serial = run_batch(handles, PROFILE, CallerConfig(), num_workers=1, chunk_size=4, worker=_echo_worker, progress=False)

    def keyed(outcomes):
        return {o.record.read_id: o.record for o in outcomes}

    assert len(first) == 9
    assert keyed(first) == keyed(second) == keyed(serial)


@pytest.mark.parametrize("num_workers", [1, 2])
def test_worker_failure_becomes_na_record(num_workers):
    outcomes = run_batch(
        _handles(6), PROFILE, CallerConfig(), num_workers=num_workers, chunk_size=4, worker=_flaky_worker, progress=False
    )

    assert len(outcomes) == 6
    failed = [o for o in outcomes if o.record.read_id == "read-3"]
    assert len(failed) == 1
    assert failed[0].failure is FailureKind.INTERNAL
    assert failed[0].record.tail_is_valid is None
    assert summarize_failures(outcomes)[FailureKind.INTERNAL] == 1


def test_empty_run():
    assert run_batch([], PROFILE, CallerConfig(), worker=_echo_worker, progress=False) == []


@pytest.mark.parametrize("chunk_size", [3, 5])
def test_dead_worker_process_only_loses_its_own_read(chunk_size):
    outcomes = run_batch(
        _handles(6), PROFILE, CallerConfig(), num_workers=2, chunk_size=chunk_size, worker=_crashing_worker, progress=False
    )

    by_id = {o.record.read_id: o for o in outcomes}
    assert len(outcomes) == 6
    assert sorted(by_id) == [f"read-{i}" for i in range(6)]
    assert by_id["read-1"].failure is FailureKind.INTERNAL
    assert by_id["read-1"].record.tail_is_valid is None
    assert all(by_id[f"read-{i}"].record.tail_is_valid for i in (0, 2, 3, 4, 5))
