"""Period finalizers: turn running totals into reported values.

``finalize(domain, period)`` applies each key's summary type to its
accumulator slot, stores the result in the :class:`FinalizedStore` marked
as fresh, and zeroes the slot for the next period. Slots that saw no day
since their last reset are skipped so nothing is ever divided by zero and
the previously finalized value stays untouched. The day period is never
finalized; its values are read straight from the day accumulator.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from .accumulators import AccumulatorBank
from .descriptors import DescriptorTable
from .errors import WiringError
from .keys import DomainObject, SummaryType
from .timeline import ROLLUP_PERIODS, Clock, Period

logger = logging.getLogger(__name__)


class FinalizedStore:
    """Latest finalized value per (key, period) with a freshness mark."""

    def __init__(self) -> None:
        self._values: Dict[Tuple[str, Period], np.ndarray] = {}
        self._fresh: Dict[Tuple[str, Period], bool] = {}

    def put(self, name: str, period: Period, values: np.ndarray) -> None:
        self._values[(name, period)] = values
        self._fresh[(name, period)] = True

    def get(self, name: str, period: Period) -> Optional[np.ndarray]:
        return self._values.get((name, period))

    def is_fresh(self, name: str, period: Period) -> bool:
        return self._fresh.get((name, period), False)

    def consume(self, period: Period) -> None:
        for pair in self._fresh:
            if pair[1] is period:
                self._fresh[pair] = False

    def clear(self) -> None:
        self._values.clear()
        self._fresh.clear()


class PeriodFinalizer:
    def __init__(self, table: DescriptorTable, bank: AccumulatorBank, store: FinalizedStore) -> None:
        self.table = table
        self.bank = bank
        self.store = store

    def finalize(self, domain: DomainObject, period: Period) -> int:
        """Finalize every key of ``domain`` at ``period``; return the number of values produced."""

        if period is Period.DAY:
            raise WiringError(f"Day values of {domain.value} are passed through and never finalized")
        acc = self.bank.get(domain, period)
        produced = 0
        for name in acc:
            slot = acc.slot(name)
            if slot.days == 0:
                continue
            summary = self.table.summary_type_of(name)
            if summary is SummaryType.OFF:
                raise WiringError(f"{name} has an accumulator at {period.long_name} but is not active")
            if summary is SummaryType.FIN:
                value = slot.last.copy()
            else:
                divisor = 1 if summary is SummaryType.SUM else slot.days
                if divisor <= 0:
                    raise WiringError(f"{name}: zero divisor while finalizing {period.long_name}")
                value = slot.total / float(divisor)
            self.store.put(name, period, value)
            slot.reset()
            produced += 1
        logger.debug("finalized %d value(s) for %s/%s", produced, domain.value, period.token)
        return produced

    def finalize_due(self, clock: Clock, flush: bool = False) -> List[Period]:
        """Finalize every period that closed yesterday, or every open period on flush."""

        due: List[Period] = []
        for period in ROLLUP_PERIODS:
            if flush or (period is not Period.YEAR and clock.new_period[period]):
                due.append(period)
        for domain in self.table.domains_in_use():
            for period in due:
                if (domain, period) in self.bank:
                    self.finalize(domain, period)
        return due

    def day_view(self, name: str) -> Optional[np.ndarray]:
        """Today's values for ``name`` without a copy; ``None`` when nothing was collected."""

        entry = self.table.descriptor(name)
        slot = self.bank.get(entry.domain, Period.DAY).slot(name)
        if slot.days == 0:
            return None
        return slot.total


__all__ = ["FinalizedStore", "PeriodFinalizer"]
