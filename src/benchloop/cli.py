"""Command-line interface for benchloop.

Provides the main CLI entry point with ``run`` and ``system`` subcommands.
"""

from __future__ import annotations

from pathlib import Path

import click

from benchloop import __version__
from benchloop.logging import setup_logging


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """benchloop — adaptive micro-benchmarks for Python code."""


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@main.command()
@click.argument("path", required=False, type=click.Path(path_type=Path))
@click.option(
    "-d",
    "--duration",
    default=None,
    help="Target measured time per benchmark ('3s', '500ms', '1m30s') "
    "or a fixed iteration count ('100x').  Default: 3s.",
)
@click.option(
    "-t",
    "--timeout",
    type=float,
    default=None,
    help="Hard budget of one measurement call, in seconds.  Default: 60.",
)
@click.option(
    "--bmf/--no-bmf",
    default=None,
    help="Print results as BMF JSON on stdout (benchmark lines go to stderr).",
)
@click.option("--preamble/--no-preamble", default=None, help="Describe the interpreter first.")
@click.option("--alloc/--no-alloc", "track_allocations", default=None, help="Count allocations.")
@click.option(
    "--csv",
    "csv_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Also write every calibration sample to this CSV file.",
)
@click.option(
    "-o",
    "--output",
    "output_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Write the BMF JSON to this file instead of stdout.",
)
@click.option("-v", "--verbose", is_flag=True, help="Show calibration steps.")
@click.option("-q", "--quiet", is_flag=True, help="Only show warnings and errors.")
@click.option("--log-file", type=click.Path(path_type=Path), default=None)
def run(  # noqa: PLR0913
    path: Path | None,
    duration: str | None,
    timeout: float | None,
    bmf: bool | None,
    preamble: bool | None,
    track_allocations: bool | None,
    csv_path: Path | None,
    output_path: Path | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Run every bench_* function in the *_bench.py files under PATH.

    Options not given on the command line fall back to BENCHLOOP_*
    environment variables, then to the nearest .benchloop.yaml.

    \b
    Examples:
        # All benchmarks under the current directory, 3s each
        benchloop run

        # One file, fixed 1000 iterations, JSON for CI
        benchloop run strings_bench.py -d 1000x --bmf > results.json
    """
    from benchloop.bench.config import config_from_sources
    from benchloop.bench.discovery import BenchLoadError
    from benchloop.bench.display import PlainReporter, format_run_summary
    from benchloop.bench.export import export_bmf, export_csv
    from benchloop.bench.runner import BenchRunner

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    cli_overrides: dict[str, object] = {
        "path": path,
        "duration": duration,
        "timeout": timeout,
        "bmf": bmf,
        "preamble": preamble,
        "track_allocations": track_allocations,
        "csv_path": csv_path,
        "output_path": output_path,
    }

    try:
        config = config_from_sources(cli_overrides=cli_overrides)
        # A BMF file on disk needs no stdout, so -o alone implies --bmf.
        if config.output_path is not None:
            config.bmf = True
        reporter = PlainReporter(bench_to_stderr=config.bmf and config.output_path is None)
        summary = BenchRunner(config, reporter=reporter).run()
    except (ValueError, BenchLoadError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        click.echo("\nBenchmark interrupted.", err=True)
        raise SystemExit(130)  # noqa: B904

    if config.bmf:
        text = export_bmf(summary.root)
        if config.output_path is not None:
            config.output_path.write_text(text)
            click.echo(f"Results saved to: {config.output_path}", err=True)
        else:
            click.echo(text, nl=False)
    elif not quiet:
        click.echo()
        click.echo(format_run_summary(summary.root))

    if config.csv_path is not None:
        config.csv_path.write_text(export_csv(summary.root))
        click.echo(f"Samples saved to: {config.csv_path}", err=True)

    if summary.exit_code:
        raise SystemExit(summary.exit_code)


# ---------------------------------------------------------------------------
# system
# ---------------------------------------------------------------------------


@main.command("system")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
def system_cmd(as_json: bool) -> None:
    """Print the interpreter and CPU description used in the preamble."""
    from benchloop.bench.system import capture_system_profile, format_system_profile

    profile = capture_system_profile()
    if as_json:
        click.echo(profile.to_json())
    else:
        click.echo(format_system_profile(profile))
