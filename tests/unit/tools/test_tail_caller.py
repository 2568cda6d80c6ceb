import numpy as np
import pytest

from tailfinder.constants import DNA_COLUMNS, RNA_COLUMNS
from tailfinder.errors import FailureKind
from tailfinder.informatics.format_probe import ContainerLayout, ExperimentType, probe_experiment
from tailfinder.informatics.read_locator import ReadHandle
from tailfinder.informatics.signal_extraction import extract_read
from tailfinder.tools import tail_caller
from tailfinder.tools.sequence_alignment import Orientation, align_adapters
from tailfinder.tools.tail_caller import TailRecord, normalise_signal, process_read
from tests.synthetic_fast5 import (
    dna_adapterless_read,
    dna_tied_adapters_read,
    rna_tail_read,
    synthetic_caller_config,
    write_multi_read_fast5,
)


def _assert_valid_record_invariants(record: TailRecord) -> None:
    assert record.tail_start <= record.tail_end
    assert record.tail_length >= 0
    assert record.tail_length == round((record.tail_end - record.tail_start) / record.samples_per_nt)


def _rna_handle(rna_fast5_dir):
    path = rna_fast5_dir / "read_0.fast5"
    return ReadHandle(path), probe_experiment(path)


def test_normalise_signal_scales_and_clips() -> None:
    x = np.array([0, 1, 2, 3, 4, 100], dtype=np.int16)
    norm = normalise_signal(x, clip=5.0)

    assert norm.max() == 5.0
    assert np.median(norm) == pytest.approx(0.0)
    assert np.allclose(normalise_signal(np.full(10, 7), clip=5.0), 0.0)


def test_rna_read_calls_polya_tail(rna_fast5_dir) -> None:
    handle, profile = _rna_handle(rna_fast5_dir)
    sequence = rna_tail_read("rna-0", seed=0).sequence

    outcome = process_read(handle, profile, synthetic_caller_config())
    record = outcome.record

    assert outcome.failure is None
    assert record.read_id == "rna-0"
    assert record.file_path == str(handle.file_path)
    assert record.tail_is_valid is True
    assert (record.tail_start, record.tail_end) == (1000, 2500)
    assert record.samples_per_nt == pytest.approx(20.0)
    assert record.tail_length == 75
    assert record.has_precise_boundary is True
    # 50 bases are emitted before the tail in signal order
    assert record.tail_adjacent_sequence == sequence[len(sequence) - 80 : len(sequence) - 50]
    _assert_valid_record_invariants(record)
    assert tuple(record.to_row(ExperimentType.RNA)) == RNA_COLUMNS


def test_dna_polyt_read(dna_multi_fast5) -> None:
    profile = probe_experiment(dna_multi_fast5)

    outcome = process_read(ReadHandle(dna_multi_fast5, "dna-polyt"), profile, synthetic_caller_config())
    record = outcome.record

    assert outcome.failure is None
    assert record.read_type == "polyT"
    assert record.tail_is_valid is True
    assert (record.tail_start, record.tail_end) == (1000, 2500)
    assert record.tail_length == 75
    assert record.tail_adjacent_sequence is None
    _assert_valid_record_invariants(record)
    assert tuple(record.to_row(ExperimentType.DNA)) == DNA_COLUMNS


def test_dna_polya_read(dna_multi_fast5) -> None:
    profile = probe_experiment(dna_multi_fast5)

    record = process_read(
        ReadHandle(dna_multi_fast5, "dna-polya"), profile, synthetic_caller_config()
    ).record

    assert record.read_type == "polyA"
    assert (record.tail_start, record.tail_end) == (6000, 7500)
    _assert_valid_record_invariants(record)


def test_all_noise_read_has_no_tail(dna_multi_fast5) -> None:
    profile = probe_experiment(dna_multi_fast5)

    outcome = process_read(ReadHandle(dna_multi_fast5, "dna-noise"), profile, synthetic_caller_config())
    record = outcome.record

    assert outcome.failure is FailureKind.SEGMENTATION
    assert record.read_id == "dna-noise"
    assert record.tail_is_valid is False
    assert record.read_type is None
    assert record.tail_start is None and record.tail_end is None
    assert record.has_precise_boundary is False


def test_unreadable_container_gives_na_record(rna_fast5_dir, tmp_path) -> None:
    _, profile = _rna_handle(rna_fast5_dir)
    bad = tmp_path / "corrupt.fast5"
    bad.write_bytes(b"garbage")

    outcome = process_read(ReadHandle(bad), profile, synthetic_caller_config())
    record = outcome.record

    assert outcome.failure is FailureKind.IO
    assert record.file_path == str(bad)
    assert record.read_id is None
    assert record.tail_is_valid is None
    assert record.tail_start is None and record.tail_end is None
    assert record.samples_per_nt is None and record.tail_length is None


def test_missing_multi_read_keeps_read_id(dna_multi_fast5) -> None:
    profile = probe_experiment(dna_multi_fast5)

    outcome = process_read(ReadHandle(dna_multi_fast5, "ghost"), profile, synthetic_caller_config())

    assert outcome.failure is FailureKind.IO
    assert outcome.record.read_id == "ghost"
    assert outcome.record.tail_is_valid is None


def test_unexpected_fault_is_contained(rna_fast5_dir, monkeypatch) -> None:
    handle, profile = _rna_handle(rna_fast5_dir)

    def _boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(tail_caller, "find_crude_boundary", _boom)

    outcome = process_read(handle, profile, synthetic_caller_config())

    assert outcome.failure is FailureKind.INTERNAL
    assert outcome.record == TailRecord.na("rna-0", str(handle.file_path))


def test_plot_sink_receives_trace(rna_fast5_dir, tmp_path, monkeypatch) -> None:
    handle, profile = _rna_handle(rna_fast5_dir)
    calls = []
    monkeypatch.setattr(
        tail_caller,
        "save_tail_plot",
        lambda trace, record, path, debug: calls.append((trace, record, path, debug)),
    )
    config = synthetic_caller_config(plot_dir=tmp_path / "plots", plot_debug_traces=True)

    outcome = process_read(handle, profile, config)

    assert len(calls) == 1
    trace, record, path, debug = calls[0]
    assert record == outcome.record
    assert path == tmp_path / "plots" / "rna-0__read_0.png"
    assert debug is True
    assert trace.windows is not None
    assert trace.precise.start_sample == 1000


def test_plot_sink_failure_does_not_change_record(rna_fast5_dir, tmp_path, monkeypatch) -> None:
    handle, profile = _rna_handle(rna_fast5_dir)
    baseline = process_read(handle, profile, synthetic_caller_config())

    def _broken_sink(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(tail_caller, "save_tail_plot", _broken_sink)
    config = synthetic_caller_config(plot_dir=tmp_path / "plots")

    outcome = process_read(handle, profile, config)

    assert outcome == baseline


@pytest.fixture
def dna_uncertain_fast5(tmp_path):
    """Reads whose adapters do not settle the orientation."""
    root = tmp_path / "dna_uncertain"
    root.mkdir()
    return write_multi_read_fast5(
        root / "batch_1.fast5",
        [
            dna_tied_adapters_read("dna-tied", seed=6),
            dna_adapterless_read("dna-bare", seed=7),
            dna_adapterless_read("dna-bare-noise", seed=8, with_tail=False),
        ],
    )


def _orientation(path, read_id, profile, config):
    read = extract_read(ReadHandle(path, read_id), profile)
    return align_adapters(read.basecall.sequence, config.adapters, config.alignment).orientation


def test_tied_adapters_label_tail_by_its_read_end(dna_uncertain_fast5) -> None:
    profile = probe_experiment(dna_uncertain_fast5)
    config = synthetic_caller_config()
    assert _orientation(dna_uncertain_fast5, "dna-tied", profile, config) is Orientation.AMBIGUOUS

    outcome = process_read(ReadHandle(dna_uncertain_fast5, "dna-tied"), profile, config)
    record = outcome.record

    # poly(T) is probed first but the tail lies at the poly(A) end
    assert outcome.failure is None
    assert record.read_type == "polyA"
    assert (record.tail_start, record.tail_end) == (6000, 7500)
    assert record.tail_length == 75
    _assert_valid_record_invariants(record)


def test_unresolved_orientation_probes_both_ends(dna_uncertain_fast5) -> None:
    profile = probe_experiment(dna_uncertain_fast5)
    config = synthetic_caller_config()
    assert _orientation(dna_uncertain_fast5, "dna-bare", profile, config) is Orientation.UNRESOLVED

    outcome = process_read(ReadHandle(dna_uncertain_fast5, "dna-bare"), profile, config)
    record = outcome.record

    assert outcome.failure is None
    assert record.tail_is_valid is True
    assert record.read_type == "polyA"
    assert (record.tail_start, record.tail_end) == (6000, 7500)
    _assert_valid_record_invariants(record)


def test_unresolved_orientation_without_tail_is_alignment_failure(dna_uncertain_fast5) -> None:
    profile = probe_experiment(dna_uncertain_fast5)

    outcome = process_read(ReadHandle(dna_uncertain_fast5, "dna-bare-noise"), profile, synthetic_caller_config())

    assert outcome.failure is FailureKind.ALIGNMENT
    assert outcome.record.tail_is_valid is False
    assert outcome.record.read_type is None


def test_unreadable_multi_read_container_gives_na_record(dna_multi_fast5) -> None:
    profile = probe_experiment(dna_multi_fast5)
    assert profile.layout is ContainerLayout.MULTI
    bad = dna_multi_fast5.parent / "zz_broken.fast5"
    bad.write_bytes(b"garbage")

    outcome = process_read(ReadHandle(bad), profile, synthetic_caller_config())

    assert outcome.failure is FailureKind.IO
    assert outcome.record == TailRecord.na(None, str(bad))


def test_plot_trace_fault_does_not_escape(rna_fast5_dir, tmp_path, monkeypatch) -> None:
    handle, profile = _rna_handle(rna_fast5_dir)
    baseline = process_read(handle, profile, synthetic_caller_config())

    def _boom(*args, **kwargs):
        raise ValueError("bad window")

    monkeypatch.setattr(tail_caller, "compute_window_traces", _boom)
    config = synthetic_caller_config(plot_dir=tmp_path / "plots", plot_debug_traces=True)

    outcome = process_read(handle, profile, config)

    assert outcome == baseline
    assert not (tmp_path / "plots").exists()
