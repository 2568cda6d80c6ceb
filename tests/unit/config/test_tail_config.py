import math
from pathlib import Path

import pytest

from tailfinder.config import (
    CallerConfig,
    ProtocolKind,
    RunConfig,
    SegmentationParams,
    load_run_config,
)
from tailfinder.config.tail_config import _parse_band, _parse_bool, _parse_numeric
from tailfinder.constants import ADAPTER_SETS, CHUNK_SIZE, SEGMENTATION_DEFAULTS
from tailfinder.errors import ConfigError


@pytest.mark.parametrize(
    "value, expected",
    [(True, True), ("yes", True), ("0", False), ("off", False), (None, False), ("2.5", True)],
)
def test_parse_bool_accepts_common_spellings(value, expected):
    assert _parse_bool(value) is expected


def test_parse_numeric_falls_back_on_blank_and_garbage():
    assert _parse_numeric("12") == 12
    assert _parse_numeric("0.5") == 0.5
    assert _parse_numeric("", 7) == 7
    assert _parse_numeric("none", 7) == 7
    assert _parse_numeric("abc", 3) == 3


def test_parse_band_from_string_and_list():
    assert _parse_band("[1, 2.5]", (0.0, 0.0)) == (1.0, 2.5)
    assert _parse_band([-1, 1], (0.0, 0.0)) == (-1.0, 1.0)
    with pytest.raises(ConfigError):
        _parse_band([2, 1], (0.0, 0.0))


def test_protocol_kind_parse():
    assert ProtocolKind.parse(None) is ProtocolKind.CDNA
    assert ProtocolKind.parse("PCR_DNA") is ProtocolKind.PCR_DNA
    with pytest.raises(ConfigError, match="dna_datatype"):
        ProtocolKind.parse("rna")


def test_adapter_set_follows_protocol():
    caller = CallerConfig(protocol=ProtocolKind.PCR_DNA)
    assert caller.adapters.polyt_adjacent == ADAPTER_SETS["pcr-dna"]["polyt_adjacent"]
    assert CallerConfig().adapters.name == "cdna"


def test_segmentation_defaults_come_from_constants():
    caller = CallerConfig()
    assert caller.rna_polya.window == SEGMENTATION_DEFAULTS["rna_polya"]["window"]
    assert caller.dna_polyt.level_band == tuple(SEGMENTATION_DEFAULTS["dna_polyt"]["level_band"])


def test_segmentation_params_validation():
    with pytest.raises(ConfigError):
        SegmentationParams(window=1)
    with pytest.raises(ConfigError):
        SegmentationParams(min_run=0)
    assert SegmentationParams().max_std == math.inf


def test_run_config_requires_paths():
    with pytest.raises(ConfigError, match="fast5_dir"):
        RunConfig.from_mapping({"save_dir": "out"})


def test_caller_for_run_only_plots_when_requested(tmp_path):
    cfg = RunConfig(tmp_path, tmp_path / "out", plot_debug_traces=True)
    assert cfg.caller_for_run().plot_dir is None
    assert cfg.caller_for_run().plot_debug_traces is False

    plotting = RunConfig(tmp_path, tmp_path / "out", save_plots=True, plot_debug_traces=True)
    caller = plotting.caller_for_run()
    assert caller.plot_dir == tmp_path / "out" / "plots"
    assert caller.plot_debug_traces is True


def test_load_run_config_yaml_with_overrides(tmp_path):
    cfg_path = tmp_path / "run.yaml"
    cfg_path.write_text(
        "\n".join(
            [
                "fast5_dir: /data/fast5",
                "save_dir: /data/out",
                "num_cores: 4",
                "dna_datatype: pcr-dna",
                "save_plots: 'true'",
                "segmentation:",
                "  dna_polyt:",
                "    window: 30",
                "    level_band: [0.0, 2.0]",
                "refinement:",
                "  sustain: 5",
                "alignment:",
                "  min_score: 12",
            ]
        )
    )

    cfg = load_run_config(cfg_path, num_cores=8, csv_filename=None)

    assert cfg.fast5_dir == Path("/data/fast5")
    assert cfg.num_cores == 8
    assert cfg.chunk_size == CHUNK_SIZE
    assert cfg.save_plots is True
    assert cfg.dna_datatype is ProtocolKind.PCR_DNA
    assert cfg.caller.dna_polyt.window == 30
    assert cfg.caller.dna_polyt.level_band == (0.0, 2.0)
    # untouched keys keep their per-tail defaults
    assert cfg.caller.dna_polyt.min_run == SEGMENTATION_DEFAULTS["dna_polyt"]["min_run"]
    assert cfg.caller.refinement.sustain == 5
    assert cfg.caller.alignment.min_score_for("ACGT") == 12


def test_load_run_config_rejects_non_mapping(tmp_path):
    cfg_path = tmp_path / "bad.yaml"
    cfg_path.write_text("- just\n- a list\n")
    with pytest.raises(ConfigError):
        load_run_config(cfg_path)
