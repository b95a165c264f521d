"""Daily collection of instantaneous values into the period accumulators."""
from __future__ import annotations

import logging
from typing import Mapping, Optional, Protocol, Tuple

import numpy as np

from .accumulators import AccumulatorBank
from .descriptors import DescriptorTable
from .errors import WiringError
from .keys import DomainObject
from .timeline import Clock, Period

logger = logging.getLogger(__name__)


class DomainSource(Protocol):
    """Read interface of the physical models.

    ``values_today`` returns today's instantaneous values of every key owned
    by ``domain``, as a mapping from key name to an array-like of the key's
    fields (layered keys may be returned with their natural 2-D shape; they
    are flattened in row-major order).
    """

    def values_today(self, domain: DomainObject, year: int, doy: int) -> Mapping[str, object]:
        ...


class DailyCollector:
    """Fold one day of values into every open accumulator."""

    def __init__(self, table: DescriptorTable, bank: AccumulatorBank, source: DomainSource, clock: Clock) -> None:
        self.table = table
        self.bank = bank
        self.source = source
        self.clock = clock
        self._last_collected: Optional[Tuple[int, int]] = None

    def reset(self) -> None:
        """Forget the last collected day (start of a repeated run)."""

        self._last_collected = None

    def collect_today(self, doy: Optional[int] = None) -> int:
        """Collect the clock's current day; return the number of keys folded."""

        year = self.clock.year
        today = self.clock.doy if doy is None else doy
        stamp = (year, today)
        if self._last_collected == stamp:
            raise WiringError(f"Day {today} of {year} was already collected")
        self._last_collected = stamp

        folded = 0
        for domain in self.table.domains_in_use():
            if (domain, Period.DAY) in self.bank:
                self.bank.get(domain, Period.DAY).reset()
            entries = [entry for entry in self.table.keys_for(domain) if entry.in_window(today)]
            if not entries:
                continue
            snapshot = self.source.values_today(domain, year, today)
            for entry in entries:
                if entry.name not in snapshot:
                    raise WiringError(
                        f"{domain.value} source returned no value for {entry.name} on day {today} of {year}"
                    )
                values = np.asarray(snapshot[entry.name], dtype=float).reshape(-1)
                if values.size != entry.ncol:
                    raise WiringError(
                        f"{entry.name}: source returned {values.size} field(s), expected {entry.ncol}"
                    )
                for period in entry.periods:
                    self.bank.get(domain, period).fold(entry.name, values)
                folded += 1
        logger.debug("collected %d key(s) on %d-%03d", folded, year, today)
        return folded


__all__ = ["DomainSource", "DailyCollector"]
