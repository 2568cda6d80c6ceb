import click
from pathlib import Path

from .errors import TailfinderError
from .find_tails import find_tails


@click.group()
def cli():
    """Command-line interface for tailfinder."""
    pass


####### Tail calling ###########
@cli.command("find-tails")
@click.argument("fast5_dir", type=click.Path(exists=True, path_type=Path))
@click.argument("save_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option("--csv-filename", default=None, help="Result CSV name inside SAVE_DIR [default: tails.csv].")
@click.option("--num-cores", "-n", type=int, default=None, help="Worker processes [default: 1].")
@click.option("--chunk-size", type=int, default=None, help="Reads submitted per chunk [default: 4000].")
@click.option("--save-plots/--no-save-plots", default=None, help="Save one PNG per read.")
@click.option(
    "--plot-debug-traces/--no-plot-debug-traces",
    default=None,
    help="Add segmentation traces to the plots (needs --save-plots).",
)
@click.option(
    "--dna-datatype",
    type=click.Choice(["cdna", "pcr-dna"], case_sensitive=False),
    default=None,
    help="Library protocol selecting the DNA adapter sequences [default: cdna].",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML file with run settings and calibration overrides.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    show_default=True,
)
@click.option("--no-progress", is_flag=True, default=False, help="Hide progress bars.")
def find_tails_cmd(
    fast5_dir: Path,
    save_dir: Path,
    csv_filename,
    num_cores,
    chunk_size,
    save_plots,
    plot_debug_traces,
    dna_datatype,
    config_path,
    log_level: str,
    no_progress: bool,
):
    """Estimate poly(A)/poly(T) tail lengths for the reads in FAST5_DIR."""
    try:
        df = find_tails(
            fast5_dir=fast5_dir,
            save_dir=save_dir,
            csv_filename=csv_filename,
            num_cores=num_cores,
            chunk_size=chunk_size,
            save_plots=save_plots,
            plot_debug_traces=plot_debug_traces,
            dna_datatype=dna_datatype,
            config_path=config_path,
            log_level=log_level,
            progress=not no_progress,
        )
    except (TailfinderError, FileNotFoundError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Processed {len(df)} read(s)")
##########################################
