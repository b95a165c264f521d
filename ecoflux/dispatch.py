"""Dispatch loop: push due period rows through every attached sink."""
from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

import numpy as np

from .descriptors import DescriptorTable
from .io.sinks import Sink
from .renderers import RendererRegistry
from .rollup import FinalizedStore, PeriodFinalizer
from .timeline import Clock, Period

logger = logging.getLogger(__name__)


class DispatchLoop:
    """Render finalized values and forward them to the sinks.

    ``t_offset`` shifts the week and month labels: on daily calls (1) the
    boundary flag fired on the first day of the new period, so the row
    belongs to the previous period; on the end-of-year flush (0) the row
    belongs to the still-open period.
    """

    def __init__(
        self,
        table: DescriptorTable,
        finalizer: PeriodFinalizer,
        store: FinalizedStore,
        registry: RendererRegistry,
        sinks: Sequence[Sink],
        clock: Clock,
    ) -> None:
        self.table = table
        self.finalizer = finalizer
        self.store = store
        self.registry = registry
        self.sinks: List[Sink] = list(sinks)
        self.clock = clock
        self.rows_emitted: Dict[Period, int] = {}

    def due_periods(self, flush: bool) -> List[Period]:
        due = []
        for period in self.table.periods_in_use():
            if period is Period.DAY:
                if not flush:
                    due.append(period)
            elif period is Period.YEAR:
                if flush:
                    due.append(period)
            elif flush or self.clock.new_period[period]:
                due.append(period)
        return due

    def _values_for(self, period: Period) -> List[Tuple[str, np.ndarray]]:
        out: List[Tuple[str, np.ndarray]] = []
        for entry in self.table.keys_for_period(period):
            if period is Period.DAY:
                if not entry.in_window(self.clock.doy):
                    continue
                values = self.finalizer.day_view(entry.name)
            elif self.store.is_fresh(entry.name, period):
                values = self.store.get(entry.name, period)
            else:
                values = None
            if values is not None:
                out.append((entry.name, values))
        return out

    def emit_due(self, *, flush: bool = False, t_offset: int = 1) -> Dict[Period, int]:
        """Emit one row per due period that holds at least one fresh value."""

        emitted: Dict[Period, int] = {}
        for period in self.due_periods(flush):
            values = self._values_for(period)
            if period is not Period.DAY:
                self.store.consume(period)
            if not values:
                continue
            index = self.clock.period_index(period, t_offset)
            for sink in self.sinks:
                sink.begin_row(period, self.clock.year, index)
            for name, raw in values:
                fields = self.registry.get(name).render(raw)
                for sink in self.sinks:
                    sink.append_fields(name, fields)
            for sink in self.sinks:
                sink.end_row()
            emitted[period] = 1
            self.rows_emitted[period] = self.rows_emitted.get(period, 0) + 1
        if emitted and logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "dispatched %s on %d-%03d (flush=%s)",
                ",".join(period.token for period in emitted),
                self.clock.year,
                self.clock.doy,
                flush,
            )
        return emitted


__all__ = ["DispatchLoop"]
