"""Period-scoped running totals.

One :class:`PeriodAccumulator` exists per (domain object, period) pair in
use. For every active key of the domain that requests the period it keeps
the running sum of the daily values, the most recent daily value, and the
number of days folded in since the last reset. Only the daily collector
and the period finalizer touch these objects.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Tuple

import numpy as np

from .descriptors import DescriptorTable, KeyDescriptor
from .errors import WiringError
from .keys import DomainObject
from .timeline import Period


@dataclass
class KeySlot:
    total: np.ndarray
    last: np.ndarray
    days: int = 0

    @classmethod
    def zeros(cls, ncol: int) -> "KeySlot":
        return cls(total=np.zeros(ncol, dtype=float), last=np.zeros(ncol, dtype=float))

    def reset(self) -> None:
        self.total.fill(0.0)
        self.last.fill(0.0)
        self.days = 0


class PeriodAccumulator:
    """Running totals for every key of one domain object at one period."""

    def __init__(self, domain: DomainObject, period: Period, descriptors: Iterable[KeyDescriptor]) -> None:
        self.domain = domain
        self.period = period
        self._slots: Dict[str, KeySlot] = {}
        for entry in descriptors:
            if entry.domain != domain:
                raise WiringError(f"{entry.name} belongs to {entry.domain.value}, not {domain.value}")
            self._slots[entry.name] = KeySlot.zeros(entry.ncol)

    def __contains__(self, name: str) -> bool:
        return name in self._slots

    def __iter__(self) -> Iterator[str]:
        return iter(self._slots)

    def slot(self, name: str) -> KeySlot:
        try:
            return self._slots[name]
        except KeyError:
            raise WiringError(
                f"No {self.period.long_name} accumulator for {name} in domain {self.domain.value}"
            ) from None

    def fold(self, name: str, values: np.ndarray) -> None:
        """Add one day of ``values`` for ``name``."""

        slot = self.slot(name)
        if values.shape != slot.total.shape:
            raise WiringError(
                f"{name}: expected {slot.total.size} field(s) for {self.period.long_name}, got {values.size}"
            )
        slot.total += values
        slot.last[:] = values
        slot.days += 1

    def reset(self) -> None:
        for slot in self._slots.values():
            slot.reset()

    def is_zero(self) -> bool:
        return all(slot.days == 0 and not slot.total.any() for slot in self._slots.values())


class AccumulatorBank:
    """All accumulators of a run, addressed by (domain object, period)."""

    def __init__(self, table: DescriptorTable) -> None:
        self._accumulators: Dict[Tuple[DomainObject, Period], PeriodAccumulator] = {}
        for domain in table.domains_in_use():
            entries = table.keys_for(domain)
            periods = sorted({period for entry in entries for period in entry.periods})
            for period in periods:
                selected = [entry for entry in entries if period in entry.periods]
                self._accumulators[(domain, period)] = PeriodAccumulator(domain, period, selected)

    def __contains__(self, pair: Tuple[DomainObject, Period]) -> bool:
        return pair in self._accumulators

    def get(self, domain: DomainObject, period: Period) -> PeriodAccumulator:
        try:
            return self._accumulators[(domain, period)]
        except KeyError:
            raise WiringError(
                f"No accumulator for domain {getattr(domain, 'value', domain)} at period {period!r}"
            ) from None

    def unflushed(self) -> List[Tuple[DomainObject, Period]]:
        """Week, month and year accumulators still holding collected days."""

        return [
            pair
            for pair, acc in self._accumulators.items()
            if pair[1] is not Period.DAY and any(acc.slot(name).days for name in acc)
        ]

    def reset_all(self) -> None:
        for acc in self._accumulators.values():
            acc.reset()


__all__ = ["KeySlot", "PeriodAccumulator", "AccumulatorBank"]
