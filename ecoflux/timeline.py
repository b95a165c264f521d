"""Calendar bookkeeping for the daily output loop.

The :class:`Clock` mirrors the simulator's model time: the current year and
day of year, the 0-based week and month indices derived from the day, and
the "new period" flags that fire on the first day of a new week or month.
Flags never fire on the first simulated day of a year; the previous year's
open periods are closed by the end-of-year flush instead.
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Iterator, Optional, Tuple

from . import constants
from .errors import ConfigurationError, WiringError


class Period(IntEnum):
    """Output time resolution."""

    DAY = 0
    WEEK = 1
    MONTH = 2
    YEAR = 3

    @property
    def token(self) -> str:
        return _PERIOD_TOKENS[self]

    @property
    def long_name(self) -> str:
        return _PERIOD_LONG[self]

    @classmethod
    def from_token(cls, value: object) -> "Period":
        """Parse ``DY``/``WK``/``MO``/``YR`` (case-insensitive)."""

        if isinstance(value, Period):
            return value
        text = str(value).strip().upper()
        for period, token in _PERIOD_TOKENS.items():
            if text == token or text == _PERIOD_LONG[period].upper():
                return period
        raise ConfigurationError(f"Unknown output period token {value!r}; expected one of DY, WK, MO, YR")


_PERIOD_TOKENS = {Period.DAY: "DY", Period.WEEK: "WK", Period.MONTH: "MO", Period.YEAR: "YR"}
_PERIOD_LONG = {Period.DAY: "Day", Period.WEEK: "Week", Period.MONTH: "Month", Period.YEAR: "Year"}

ROLLUP_PERIODS: Tuple[Period, ...] = (Period.WEEK, Period.MONTH, Period.YEAR)


def days_in_year(year: int) -> int:
    return 366 if calendar.isleap(year) else 365


def days_in_month(year: int, month: int) -> int:
    """Return the length of 0-based ``month`` in ``year``."""

    return calendar.monthrange(year, month + 1)[1]


def doy2week(doy: int) -> int:
    """Return the 0-based week index of a 1-based day of year."""

    return (doy - 1) // constants.WKDAYS


def doy2month(year: int, doy: int) -> int:
    """Return the 0-based month index of a 1-based day of year."""

    cum = 0
    for month in range(constants.MAX_MONTHS):
        cum += days_in_month(year, month)
        if doy <= cum:
            return month
    raise WiringError(f"Day of year {doy} is outside year {year}")


@dataclass
class Clock:
    """Model time for a simulation spanning ``start_year`` .. ``end_year``.

    ``start_doy`` is the first simulated day of the first year and
    ``end_doy`` the last simulated day of the final year (``None`` means
    the end of that year).
    """

    start_year: int
    end_year: int
    start_doy: int = 1
    end_doy: Optional[int] = None
    year: int = field(init=False, default=0)
    doy: int = field(init=False, default=0)
    week: int = field(init=False, default=0)
    month: int = field(init=False, default=0)
    first_doy: int = field(init=False, default=1)
    last_doy: int = field(init=False, default=365)
    new_period: Dict[Period, bool] = field(init=False)
    _prev_week: Optional[int] = field(init=False, default=None, repr=False)
    _prev_month: Optional[int] = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        if self.end_year < self.start_year:
            raise ConfigurationError(
                f"end_year ({self.end_year}) must not precede start_year ({self.start_year})"
            )
        if not 1 <= self.start_doy <= days_in_year(self.start_year):
            raise ConfigurationError(f"start_doy={self.start_doy} is outside year {self.start_year}")
        if self.end_doy is not None and not 1 <= self.end_doy <= days_in_year(self.end_year):
            raise ConfigurationError(f"end_doy={self.end_doy} is outside year {self.end_year}")
        if self.start_year == self.end_year and self.end_doy is not None and self.end_doy < self.start_doy:
            raise ConfigurationError("end_doy must not precede start_doy within a single-year run")
        self.new_period = {period: False for period in Period}
        self.new_period[Period.DAY] = True

    # ------------------------------------------------------------------
    # Simulation bounds
    # ------------------------------------------------------------------
    @property
    def n_years(self) -> int:
        return self.end_year - self.start_year + 1

    def years(self) -> Iterator[int]:
        return iter(range(self.start_year, self.end_year + 1))

    def bounds(self, year: int) -> Tuple[int, int]:
        """Return the first and last simulated day of ``year``."""

        first = self.start_doy if year == self.start_year else 1
        last = days_in_year(year)
        if year == self.end_year and self.end_doy is not None:
            last = self.end_doy
        return first, last

    def n_simulated_days(self) -> int:
        total = 0
        for year in self.years():
            first, last = self.bounds(year)
            total += last - first + 1
        return total

    def nrow(self, period: Period) -> int:
        """Upper bound of rows a period can produce over the whole run."""

        if period is Period.DAY:
            return self.n_simulated_days()
        if period is Period.WEEK:
            return self.n_years * constants.MAX_WEEKS
        if period is Period.MONTH:
            return self.n_years * constants.MAX_MONTHS
        return self.n_years

    # ------------------------------------------------------------------
    # Daily stepping
    # ------------------------------------------------------------------
    def new_year(self, year: int) -> Tuple[int, int]:
        if year < self.start_year or year > self.end_year:
            raise WiringError(f"Year {year} is outside the simulated range {self.start_year}-{self.end_year}")
        self.year = year
        self.first_doy, self.last_doy = self.bounds(year)
        self._prev_week = None
        self._prev_month = None
        self.doy = 0
        for period in ROLLUP_PERIODS:
            self.new_period[period] = False
        return self.first_doy, self.last_doy

    def new_day(self, doy: int) -> None:
        if not self.first_doy <= doy <= self.last_doy:
            raise WiringError(
                f"Day {doy} is outside the simulated window {self.first_doy}-{self.last_doy} of {self.year}"
            )
        self.doy = doy
        self.month = doy2month(self.year, doy)
        self.week = doy2week(doy)

        if self.month != self._prev_month:
            self.new_period[Period.MONTH] = self._prev_month is not None
            self._prev_month = self.month
        else:
            self.new_period[Period.MONTH] = False

        if self.week != self._prev_week:
            self.new_period[Period.WEEK] = self._prev_week is not None
            self._prev_week = self.week
        else:
            self.new_period[Period.WEEK] = False

    def period_index(self, period: Period, t_offset: int) -> int:
        """Label of the period being written.

        Week and month labels are 1-based. ``t_offset`` is 1 for rows written
        on the first day of a new period (the previous period is reported)
        and 0 for end-of-year flush rows (the still-open period is reported).
        """

        if period is Period.DAY:
            return self.doy
        if period is Period.WEEK:
            return self.week + 1 - t_offset
        if period is Period.MONTH:
            return self.month + 1 - t_offset
        return 0


__all__ = [
    "Period",
    "ROLLUP_PERIODS",
    "Clock",
    "days_in_year",
    "days_in_month",
    "doy2week",
    "doy2month",
]
