"""Cross-iteration running statistics.

When the whole simulation is repeated (stochastic weather, perturbed
inputs) the :class:`IterationSummarySink` keeps, for every
(key, period, row, field), the running mean and the sum of squared
deviations over the completed runs. Individual rows are only buffered
for the current run; the statistics advance once per completed run and
one table per period is written after the final run.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from ..errors import WiringError
from ..timeline import Period
from . import writer
from .sinks import OutputLayout, Row, Sink

logger = logging.getLogger(__name__)


class RunningStat:
    """Welford mean and sum of squared deviations over equally shaped arrays."""

    def __init__(self) -> None:
        self.n = 0
        self.mean: Optional[np.ndarray] = None
        self.m2: Optional[np.ndarray] = None

    def reset(self) -> None:
        self.n = 0
        self.mean = None
        self.m2 = None

    def update(self, values: np.ndarray) -> None:
        x = np.asarray(values, dtype=float)
        if self.mean is None or self.m2 is None:
            self.mean = np.zeros_like(x)
            self.m2 = np.zeros_like(x)
        elif x.shape != self.mean.shape:
            raise WiringError(f"running statistics expected shape {self.mean.shape}, got {x.shape}")
        self.n += 1
        delta = x - self.mean
        self.mean += delta / self.n
        self.m2 += delta * (x - self.mean)

    @property
    def variance(self) -> np.ndarray:
        if self.m2 is None:
            return np.empty(0)
        if self.n < 2:
            return np.zeros_like(self.m2)
        return self.m2 / (self.n - 1)

    @property
    def sd(self) -> np.ndarray:
        return np.sqrt(self.variance)


class IterationSummarySink(Sink):
    """Mean and standard deviation across repeated runs, one CSV per period."""

    name = "iteration_summary"

    def __init__(self) -> None:
        super().__init__()
        self._rows: Dict[Period, List[Row]] = {}
        self._labels: Dict[Period, List[Tuple[int, int]]] = {}
        self.stats: Dict[Tuple[str, Period], RunningStat] = {}
        self.completed = 0
        self.outputs: Dict[Period, Path] = {}

    def open(self, layout: OutputLayout) -> None:
        super().open(layout)
        for period in layout.periods:
            for item in layout.keys[period]:
                self.stats[(item.name, period)] = RunningStat()

    def begin_iteration(self, iteration: int) -> None:
        super().begin_iteration(iteration)
        if iteration == 0:
            for stat in self.stats.values():
                stat.reset()
            self._labels.clear()
            self.completed = 0
        self._rows = {period: [] for period in self._require_open().periods}

    def _on_end_row(self, row: Row) -> None:
        self._rows[row.period].append(row)

    def end_iteration(self) -> None:
        super().end_iteration()
        layout = self._require_open()
        for period in layout.periods:
            rows = self._rows.get(period, [])
            labels = [(row.year, row.index) for row in rows]
            expected = self._labels.setdefault(period, labels)
            if labels != expected:
                raise WiringError(
                    f"iteration {self.iteration + 1}: {period.long_name} rows differ from the first run "
                    f"({len(labels)} vs {len(expected)} row(s))"
                )
            for item in layout.keys[period]:
                block = np.full((len(rows), item.ncol), np.nan)
                for idx, row in enumerate(rows):
                    values = row.fields.get(item.name)
                    if values is not None:
                        block[idx] = values
                self.stats[(item.name, period)].update(block)
        self.completed += 1
        logger.debug("iteration summary folded run %d", self.completed)
        if self.completed == layout.iterations:
            self.write()

    def frame(self, period: Period) -> pd.DataFrame:
        """Mean/SD table of one period over the runs completed so far."""

        layout = self._require_open()
        labels = self._labels.get(period, [])
        data: Dict[str, object] = {"Year": [year for year, _ in labels]}
        if period is not Period.YEAR:
            data[period.long_name] = [index for _, index in labels]
        for item in layout.keys[period]:
            stat = self.stats[(item.name, period)]
            if stat.mean is None:
                continue
            sd = stat.sd
            for col, label in enumerate(item.labels):
                data[f"{label}_Mean"] = stat.mean[:, col]
                data[f"{label}_SD"] = sd[:, col]
        return pd.DataFrame(data)

    def write(self) -> Dict[Period, Path]:
        layout = self._require_open()
        for period in layout.periods:
            path = layout.outdir / f"{layout.prefix}_agg_{period.long_name.lower()}.csv"
            writer.write_csv(self.frame(period), path, sep=layout.separator, digits=layout.digits)
            self.outputs[period] = path
        logger.info("iteration summary over %d run(s) written for %d period(s)", self.completed, len(self.outputs))
        return self.outputs

    def close(self) -> None:
        if not self.closed and self.completed and not self.outputs:
            self.write()
        super().close()

    def summary(self) -> Dict[str, object]:
        return {"runs": self.completed, "files": [str(path) for path in self.outputs.values()]}


__all__ = ["RunningStat", "IterationSummarySink"]
