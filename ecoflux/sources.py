"""Adapters feeding daily values from the physical models into the collector."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

from .collector import DomainSource
from .errors import ConfigurationError
from .keys import CATALOGUE, DomainObject
from .schema import SiteFeatures

logger = logging.getLogger(__name__)

DomainCallable = Callable[[int, int], Mapping[str, object]]


def _key_of_column(column: str) -> Optional[str]:
    head = column.split("_", 1)[0].upper()
    return head if head in CATALOGUE else None


class FrameSource:
    """Daily values read from a table with ``year``, ``doy`` and key columns.

    A key with a single field may use a bare ``KEY`` column; otherwise
    columns are named ``KEY_field`` (``TEMP_max_C``, ``SWCBULK_Lyr_2``).
    When ``site`` is given the columns of each key are reordered to match
    the key's output columns.
    """

    def __init__(self, frame: pd.DataFrame, site: Optional[SiteFeatures] = None) -> None:
        missing = {"year", "doy"} - set(frame.columns)
        if missing:
            raise ConfigurationError(f"daily input is missing column(s): {', '.join(sorted(missing))}")
        self.columns: Dict[str, List[str]] = {}
        for column in frame.columns:
            if column in ("year", "doy"):
                continue
            key = _key_of_column(str(column))
            if key is None:
                logger.debug("daily input column %s matches no output key; ignored", column)
                continue
            self.columns.setdefault(key, []).append(str(column))
        if site is not None:
            for key, cols in self.columns.items():
                expected = [f"{key}_{name}" for name in CATALOGUE[key].shape.columns(site)]
                if set(expected) <= set(cols):
                    self.columns[key] = expected
        indexed = frame.astype({"year": "int64", "doy": "int64"}).set_index(["year", "doy"])
        if not indexed.index.is_unique:
            raise ConfigurationError("daily input has duplicate (year, doy) rows")
        self._values: Dict[str, np.ndarray] = {
            key: indexed[cols].to_numpy(dtype=float) for key, cols in self.columns.items()
        }
        self._row: Dict[Tuple[int, int], int] = {pair: pos for pos, pair in enumerate(indexed.index)}
        logger.info("Daily input: %d day(s), %d key(s)", len(self._row), len(self.columns))

    @classmethod
    def from_path(cls, path: Path, site: Optional[SiteFeatures] = None) -> "FrameSource":
        path = Path(path)
        if path.suffix.lower() in {".parquet", ".pq"}:
            frame = pd.read_parquet(path)
        else:
            frame = pd.read_csv(path)
        return cls(frame, site)

    def values_today(self, domain: DomainObject, year: int, doy: int) -> Mapping[str, object]:
        pos = self._row.get((int(year), int(doy)))
        if pos is None:
            return {}
        return {
            key: values[pos]
            for key, values in self._values.items()
            if CATALOGUE[key].domain == domain
        }


class CallableSource:
    """One callable ``f(year, doy) -> {key: values}`` per domain object.

    Results are cached for the current day so repeated pulls stay idempotent.
    """

    def __init__(self, callables: Mapping[DomainObject, DomainCallable]) -> None:
        self.callables = dict(callables)
        self._cache: Dict[DomainObject, Tuple[Tuple[int, int], Mapping[str, object]]] = {}

    def values_today(self, domain: DomainObject, year: int, doy: int) -> Mapping[str, object]:
        cached = self._cache.get(domain)
        if cached is not None and cached[0] == (year, doy):
            return cached[1]
        func = self.callables.get(domain)
        snapshot: Mapping[str, object] = {} if func is None else func(year, doy)
        self._cache[domain] = ((year, doy), snapshot)
        return snapshot


class PerturbedSource:
    """Seeded multiplicative noise on top of another source.

    Each value is scaled by ``1 + sigma * z`` with ``z`` standard normal.
    ``begin_iteration`` reseeds the generator from ``(seed, iteration)`` so
    every repeated run is reproducible on its own.
    Categorical keys (establishment days, wet-day and frozen-layer flags) and
    any name in ``exempt`` pass through unchanged.
    """

    def __init__(
        self,
        base: DomainSource,
        *,
        sigma: float = 0.05,
        seed: Optional[int] = None,
        exempt: Iterable[str] = (),
    ) -> None:
        if sigma < 0.0:
            raise ConfigurationError(f"noise sigma must be non-negative, got {sigma}")
        self.base = base
        self.sigma = float(sigma)
        self.seed = seed
        self.exempt = {name for name, key in CATALOGUE.items() if key.categorical}
        self.exempt.update(str(name).upper() for name in exempt)
        self._rng = np.random.default_rng(seed)
        self._cache: Dict[Tuple[DomainObject, int, int], Dict[str, np.ndarray]] = {}

    def begin_iteration(self, iteration: int) -> None:
        entropy = [iteration] if self.seed is None else [self.seed, iteration]
        self._rng = np.random.default_rng(entropy)
        self._cache.clear()
        begin = getattr(self.base, "begin_iteration", None)
        if callable(begin):
            begin(iteration)

    def values_today(self, domain: DomainObject, year: int, doy: int) -> Mapping[str, object]:
        stamp = (domain, year, doy)
        cached = self._cache.get(stamp)
        if cached is not None:
            return cached
        snapshot = self.base.values_today(domain, year, doy)
        noisy: Dict[str, np.ndarray] = {}
        for key in sorted(snapshot):
            values = np.asarray(snapshot[key], dtype=float)
            if key in self.exempt:
                noisy[key] = values.copy()
                continue
            noisy[key] = values * (1.0 + self.sigma * self._rng.standard_normal(values.shape))
        if any((y, d) != (year, doy) for _, y, d in self._cache):
            self._cache.clear()
        self._cache[stamp] = noisy
        return noisy


__all__ = ["FrameSource", "CallableSource", "PerturbedSource", "DomainCallable"]
