"""Lifecycle controller wiring the output pipeline to the simulation loop.

The run controller calls, for every iteration::

    engine.begin_iteration(i)
    for year in years:
        engine.on_new_year(year)
        for doy in simulated days of year:
            engine.on_new_day(doy)
        engine.on_run_flush()
    engine.end_iteration()

and ``engine.close()`` once at the end. Within a simulated day the
periods that closed yesterday are finalized first, then today's values are
collected, then due rows are dispatched. Because a boundary flag fires on
the first day of the new period, the period being finalized received its
last values on the previous day; today's values always go into the new
period.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .accumulators import AccumulatorBank
from .collector import DailyCollector, DomainSource
from .descriptors import DescriptorTable
from .dispatch import DispatchLoop
from .errors import WiringError
from .io.sinks import OutputLayout, Sink
from .renderers import RendererRegistry
from .rollup import FinalizedStore, PeriodFinalizer
from .timeline import Clock, Period

logger = logging.getLogger(__name__)


class OutputEngine:
    def __init__(
        self,
        table: DescriptorTable,
        source: DomainSource,
        sinks: Sequence[Sink],
        clock: Clock,
        registry: Optional[RendererRegistry] = None,
    ) -> None:
        self.table = table
        self.clock = clock
        self.source = source
        self.sinks: List[Sink] = list(sinks)
        self.bank = AccumulatorBank(table)
        self.store = FinalizedStore()
        self.finalizer = PeriodFinalizer(table, self.bank, self.store)
        self.collector = DailyCollector(table, self.bank, source, clock)
        self.registry = registry if registry is not None else RendererRegistry(table)
        self.dispatch = DispatchLoop(table, self.finalizer, self.store, self.registry, self.sinks, clock)
        self.layout: Optional[OutputLayout] = None
        self.iteration: Optional[int] = None
        self.days_simulated = 0

    def open(self, *, outdir: Path = Path("out"), prefix: str = "ecoflux", iterations: int = 1) -> OutputLayout:
        """Resolve the column layout and open every sink."""

        self.layout = OutputLayout.build(
            self.table,
            self.registry,
            self.clock,
            outdir=outdir,
            prefix=prefix,
            iterations=iterations,
        )
        for sink in self.sinks:
            sink.open(self.layout)
        logger.info(
            "Output engine opened with %d sink(s) [%s], periods=%s",
            len(self.sinks),
            ", ".join(sink.name for sink in self.sinks),
            ",".join(period.token for period in self.layout.periods),
        )
        return self.layout

    def begin_iteration(self, iteration: int) -> None:
        if self.layout is None:
            self.open()
        self.iteration = iteration
        self.bank.reset_all()
        self.store.clear()
        self.collector.reset()
        begin = getattr(self.source, "begin_iteration", None)
        if callable(begin):
            begin(iteration)
        for sink in self.sinks:
            sink.begin_iteration(iteration)

    def on_new_year(self, year: int) -> None:
        if self.iteration is None:
            raise WiringError("on_new_year called before begin_iteration")
        pending = self.bank.unflushed()
        if pending:
            names = ", ".join(f"{domain.value}/{period.token}" for domain, period in pending)
            raise WiringError(f"on_run_flush was not called before on_new_year({year}); open periods: {names}")
        first_doy, last_doy = self.clock.new_year(year)
        self.table.new_year(first_doy, last_doy)
        logger.debug("year %d: simulated days %d-%d", year, first_doy, last_doy)

    def on_new_day(self, doy: int) -> Dict[Period, int]:
        self.clock.new_day(doy)
        self.finalizer.finalize_due(self.clock, flush=False)
        self.collector.collect_today()
        self.days_simulated += 1
        return self.dispatch.emit_due(flush=False, t_offset=1)

    def on_run_flush(self) -> Dict[Period, int]:
        """Finalize and emit every open week, month and year with partial-period divisors."""

        self.finalizer.finalize_due(self.clock, flush=True)
        emitted = self.dispatch.emit_due(flush=True, t_offset=0)
        for period in (Period.WEEK, Period.MONTH, Period.YEAR):
            self.clock.new_period[period] = False
        return emitted

    def end_iteration(self) -> None:
        for sink in self.sinks:
            sink.end_iteration()
        self.iteration = None

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()
        logger.info("Output engine closed after %d simulated day(s)", self.days_simulated)

    def rows_emitted(self) -> Dict[str, int]:
        return {period.token: count for period, count in self.dispatch.rows_emitted.items()}


__all__ = ["OutputEngine"]
