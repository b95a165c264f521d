"""Run controller and command line entry point.

``run_simulation`` drives the output engine through every iteration,
year and simulated day, then writes ``run_config.json`` and
``summary.json`` next to the outputs. ``main`` wraps it for the CLI::

    python -m ecoflux.run --config site.yml --daily-input daily.csv --override sinks.parquet=true
"""
from __future__ import annotations

import argparse
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from . import config_utils
from .collector import DomainSource
from .descriptors import DescriptorTable
from .engine import OutputEngine
from .errors import ConfigurationError, EcofluxError
from .io import writer
from .io.iteration import IterationSummarySink
from .io.outarray import ArraySink
from .io.parquet import ParquetSink
from .io.sinks import Sink, TextSink
from .runtime.helpers import format_exception_short, log_stage
from .runtime.progress import ProgressReporter
from .schema import Config
from .sources import FrameSource, PerturbedSource
from .timeline import Clock

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    iterations: int
    years: List[int]
    days_per_iteration: int
    rows: Dict[str, int]
    active_keys: List[str]
    notices: List[str] = field(default_factory=list)
    sinks: Dict[str, Any] = field(default_factory=dict)
    elapsed_s: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def build_sinks(cfg: Config) -> List[Sink]:
    """Instantiate the sinks enabled in ``cfg.sinks``."""

    opts = cfg.sinks
    sinks: List[Sink] = []
    if opts.text:
        sinks.append(TextSink(store_all_iterations=opts.store_all_iterations))
    if opts.array:
        sinks.append(ArraySink())
    if opts.parquet:
        sinks.append(ParquetSink(compression=opts.compression, flush_rows=opts.flush_rows))
    if opts.iteration_summary:
        if cfg.simulation.iterations > 1:
            sinks.append(IterationSummarySink())
        else:
            logger.info("sinks.iteration_summary ignored for a single iteration")
    return sinks


def wrap_source(cfg: Config, source: DomainSource) -> DomainSource:
    sim = cfg.simulation
    if sim.noise_sigma > 0.0:
        return PerturbedSource(source, sigma=sim.noise_sigma, seed=sim.seed)
    return source


def run_simulation(
    cfg: Config,
    source: DomainSource,
    sinks: Optional[Sequence[Sink]] = None,
    *,
    write_metadata: bool = True,
) -> RunSummary:
    """Run every iteration of the configured simulation through the output engine."""

    started = time.perf_counter()
    sim = cfg.simulation
    clock = Clock(sim.start_year, sim.end_year, sim.start_doy, sim.end_doy)
    log_stage(logger, "setup", extra={"years": f"{sim.start_year}-{sim.end_year}", "iterations": sim.iterations})
    table = DescriptorTable.from_config(cfg, clock)
    active_sinks = list(sinks) if sinks is not None else build_sinks(cfg)
    engine = OutputEngine(table, wrap_source(cfg, source), active_sinks, clock)
    outdir = Path(cfg.io.outdir)
    engine.open(outdir=outdir, prefix=cfg.sinks.prefix, iterations=sim.iterations)

    total_days = clock.n_simulated_days()
    progress = ProgressReporter(total_days, iterations=sim.iterations, enabled=cfg.io.progress)
    step_no = 0
    try:
        for iteration in range(sim.iterations):
            log_stage(logger, "iteration", extra={"index": iteration + 1})
            engine.begin_iteration(iteration)
            for year in clock.years():
                engine.on_new_year(year)
                for doy in range(clock.first_doy, clock.last_doy + 1):
                    engine.on_new_day(doy)
                    progress.update(step_no, year, doy, iteration)
                    step_no += 1
                engine.on_run_flush()
            engine.end_iteration()
        progress.finish(step_no - 1, clock.year, clock.doy, sim.iterations - 1)
    except EcofluxError as exc:
        logger.error("run aborted on %d-%03d: %s", clock.year, clock.doy, format_exception_short(exc))
        raise
    finally:
        engine.close()

    summary = RunSummary(
        iterations=sim.iterations,
        years=list(clock.years()),
        days_per_iteration=total_days,
        rows=engine.rows_emitted(),
        active_keys=table.active_keys(),
        notices=list(table.notices),
        sinks={sink.name: sink.summary() for sink in active_sinks},
        elapsed_s=time.perf_counter() - started,
    )
    if write_metadata:
        writer.write_run_config(config_utils.dump_config(cfg), outdir / "run_config.json")
        writer.write_summary(summary.to_dict(), outdir / "summary.json")
    log_stage(logger, "done", extra={"rows": summary.rows, "elapsed_s": round(summary.elapsed_s, 3)})
    return summary


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point."""

    parser = argparse.ArgumentParser(description="Aggregate daily simulator output into period tables")
    parser.add_argument("--config", type=Path, required=True, help="Path to YAML configuration")
    parser.add_argument(
        "--override",
        action="append",
        nargs="+",
        metavar="PATH=VALUE",
        help="Apply configuration overrides using dotted paths; e.g. --override sinks.parquet=true",
    )
    parser.add_argument(
        "--overrides-file",
        action="append",
        type=Path,
        help="Load overrides from a file (one PATH=VALUE per line).",
    )
    parser.add_argument("--daily-input", type=Path, help="CSV or Parquet file of daily values (overrides io.daily_input)")
    parser.add_argument("--iterations", type=int, help="Number of repeated runs (overrides simulation.iterations)")
    parser.add_argument("--progress", action="store_true", help="Show a console progress bar with ETA.")
    parser.add_argument(
        "--quiet",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Suppress INFO logs and Python warnings (defaults to io.quiet).",
    )
    args = parser.parse_args(argv)

    override_list: List[str] = []
    if args.overrides_file:
        for override_path in args.overrides_file:
            override_list.extend(config_utils.read_overrides_file(override_path))
    if args.override:
        for group in args.override:
            override_list.extend(group)
    try:
        cfg = config_utils.load_config(args.config, overrides=override_list)
        if args.iterations is not None:
            if args.iterations < 1:
                raise ConfigurationError(f"--iterations must be >= 1, got {args.iterations}")
            cfg.simulation.iterations = args.iterations
    except ConfigurationError as exc:
        config_utils.configure_logging(logging.INFO)
        logger.error("%s", format_exception_short(exc))
        return 2
    if args.daily_input is not None:
        cfg.io.daily_input = args.daily_input
    if args.progress:
        cfg.io.progress = True
    if args.quiet is not None:
        cfg.io.quiet = bool(args.quiet)
    quiet = bool(cfg.io.quiet)
    config_utils.configure_logging(logging.WARNING if quiet else logging.INFO, suppress_warnings=quiet)

    if cfg.io.daily_input is None:
        logger.error("No daily input given; set io.daily_input or pass --daily-input")
        return 2
    try:
        source = FrameSource.from_path(cfg.io.daily_input, cfg.site)
    except OSError as exc:
        logger.error("Cannot read daily input %s: %s", cfg.io.daily_input, format_exception_short(exc))
        return 2
    try:
        summary = run_simulation(cfg, source)
    except EcofluxError as exc:
        logger.error("%s", format_exception_short(exc))
        return 1
    logger.info("Wrote outputs for %d iteration(s) to %s", summary.iterations, cfg.io.outdir)
    return 0


__all__ = ["RunSummary", "build_sinks", "wrap_source", "run_simulation", "main"]


if __name__ == "__main__":  # pragma: no cover - standard CLI entrypoint
    raise SystemExit(main())
