from __future__ import annotations

from pathlib import Path

import pytest

from tests.synthetic_fast5 import (
    dna_noise_read,
    dna_polya_read,
    dna_polyt_read,
    rna_tail_read,
    write_multi_read_fast5,
    write_single_read_fast5,
)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Mark all tests under tests/unit as unit tests and tests/e2e as e2e tests."""
    for item in items:
        path = f"/{Path(str(item.fspath)).as_posix()}"
        if "/tests/unit/" in path:
            item.add_marker(pytest.mark.unit)
        elif "/tests/e2e/" in path:
            item.add_marker(pytest.mark.e2e)


@pytest.fixture
def rna_fast5_dir(tmp_path: Path) -> Path:
    """Three single-read RNA files, one of them in a nested directory."""
    root = tmp_path / "rna_fast5"
    nested = root / "pass" / "0"
    nested.mkdir(parents=True)
    write_single_read_fast5(root / "read_0.fast5", rna_tail_read("rna-0", seed=0))
    write_single_read_fast5(root / "read_1.fast5", rna_tail_read("rna-1", seed=1))
    write_single_read_fast5(nested / "read_2.fast5", rna_tail_read("rna-2", seed=2))
    return root


@pytest.fixture
def dna_multi_fast5(tmp_path: Path) -> Path:
    """One multi-read DNA file: a poly(T) read, a poly(A) read and a noise read."""
    root = tmp_path / "dna_fast5"
    root.mkdir()
    return write_multi_read_fast5(
        root / "batch_0.fast5",
        [
            dna_polyt_read("dna-polyt", seed=3),
            dna_polya_read("dna-polya", seed=4),
            dna_noise_read("dna-noise", seed=5),
        ],
    )
