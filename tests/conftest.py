from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ecoflux.descriptors import DescriptorTable  # noqa: E402
from ecoflux.engine import OutputEngine  # noqa: E402
from ecoflux.io.outarray import ArraySink  # noqa: E402
from ecoflux.keys import CATALOGUE, DomainObject  # noqa: E402
from ecoflux.schema import Config, SiteFeatures  # noqa: E402
from ecoflux.timeline import Clock  # noqa: E402


class RampSource:
    """Daily source returning ``fn(name, year, doy)`` in every field of every key."""

    def __init__(
        self,
        names: Iterable[str],
        site: Optional[SiteFeatures] = None,
        fn: Optional[Callable[[str, int, int], float]] = None,
    ) -> None:
        self.site = site if site is not None else SiteFeatures()
        self.fn = fn if fn is not None else (lambda name, year, doy: float(doy))
        self.ncol: Dict[str, int] = {
            name: len(CATALOGUE[name].shape.columns(self.site)) for name in names if name in CATALOGUE
        }
        self.iteration = 0
        self.calls: List[tuple] = []

    def begin_iteration(self, iteration: int) -> None:
        self.iteration = iteration

    def values_today(self, domain: DomainObject, year: int, doy: int):
        self.calls.append((domain, year, doy))
        return {
            name: np.full(ncol, self.fn(name, year, doy))
            for name, ncol in self.ncol.items()
            if CATALOGUE[name].domain == domain
        }


def make_config(
    keys: List[dict],
    *,
    outdir: Path,
    start_year: int = 2001,
    end_year: int = 2001,
    start_doy: int = 1,
    end_doy: Optional[int] = None,
    site: Optional[dict] = None,
    timestep: Optional[List[str]] = None,
    sinks: Optional[dict] = None,
    iterations: int = 1,
) -> Config:
    return Config(
        simulation={
            "start_year": start_year,
            "end_year": end_year,
            "start_doy": start_doy,
            "end_doy": end_doy,
            "iterations": iterations,
        },
        site=site or {},
        output={"keys": keys, "timestep": timestep},
        sinks=sinks or {},
        io={"outdir": str(outdir)},
    )


@pytest.fixture
def ramp_source() -> type:
    return RampSource


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., Config]:
    def _make(keys: List[dict], **kwargs) -> Config:
        kwargs.setdefault("outdir", tmp_path / "out")
        return make_config(keys, **kwargs)

    return _make


@pytest.fixture
def make_engine(config_factory) -> Callable[..., OutputEngine]:
    """Build an opened engine; an :class:`ArraySink` is attached when no sinks are given."""

    def _make(keys: List[dict], *, sinks=None, source=None, fn=None, **kwargs) -> OutputEngine:
        cfg = config_factory(keys, **kwargs)
        sim = cfg.simulation
        clock = Clock(sim.start_year, sim.end_year, sim.start_doy, sim.end_doy)
        table = DescriptorTable.from_config(cfg, clock)
        if source is None:
            source = RampSource([row["key"].upper() for row in keys], cfg.site, fn)
        engine = OutputEngine(table, source, sinks if sinks is not None else [ArraySink()], clock)
        engine.open(outdir=cfg.io.outdir, prefix=cfg.sinks.prefix, iterations=sim.iterations)
        return engine

    return _make


def drive(engine: OutputEngine, iteration: int = 0) -> None:
    engine.begin_iteration(iteration)
    for year in engine.clock.years():
        engine.on_new_year(year)
        for doy in range(engine.clock.first_doy, engine.clock.last_doy + 1):
            engine.on_new_day(doy)
        engine.on_run_flush()
    engine.end_iteration()


@pytest.fixture
def run_engine() -> Callable[..., None]:
    return drive
