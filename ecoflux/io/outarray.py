"""In-memory output arrays for embedding hosts.

Each (key, period) pair owns a pre-sized 2-D float array whose leading
columns carry the time header (``Year`` plus ``Day``/``Week``/``Month``)
followed by the key's fields. The row offset of each period advances once
per emitted row. Arrays are NaN-initialised so rows a key did not report
stay visibly empty.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd
import pyarrow as pa

from ..errors import SinkError, WiringError
from ..timeline import Period
from .sinks import OutputLayout, Row, Sink

logger = logging.getLogger(__name__)


class ArraySink(Sink):
    name = "array"

    def __init__(self) -> None:
        super().__init__()
        self.arrays: Dict[Tuple[str, Period], np.ndarray] = {}
        self.irow: Dict[Period, int] = {}

    def open(self, layout: OutputLayout) -> None:
        super().open(layout)
        for period in layout.periods:
            ntime = len(layout.time_columns(period))
            for item in layout.keys[period]:
                self.arrays[(item.name, period)] = np.full((layout.nrow[period], ntime + item.ncol), np.nan)
            self.irow[period] = 0
        logger.debug(
            "array sink allocated %d buffer(s): %s",
            len(self.arrays),
            {period.token: layout.nrow[period] for period in layout.periods},
        )

    def begin_iteration(self, iteration: int) -> None:
        super().begin_iteration(iteration)
        for arr in self.arrays.values():
            arr.fill(np.nan)
        for period in self.irow:
            self.irow[period] = 0

    def _on_begin_row(self, row: Row) -> None:
        layout = self._require_open()
        offset = self.irow[row.period]
        if offset >= layout.nrow[row.period]:
            raise WiringError(
                f"array sink: {row.period.long_name} buffer holds {layout.nrow[row.period]} row(s); "
                f"cannot write row {offset + 1}"
            )
        header = [row.year] if row.period is Period.YEAR else [row.year, row.index]
        for item in layout.keys[row.period]:
            self.arrays[(item.name, row.period)][offset, : len(header)] = header

    def _on_fields(self, row: Row, key: str, values: np.ndarray) -> None:
        arr = self.arrays[(key, row.period)]
        ntime = 1 if row.period is Period.YEAR else 2
        arr[self.irow[row.period], ntime:] = values

    def _on_end_row(self, row: Row) -> None:
        self.irow[row.period] += 1

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def array(self, key: str, period: Period) -> np.ndarray:
        try:
            return self.arrays[(key, period)]
        except KeyError:
            raise SinkError(f"array sink has no buffer for {key} at {period.long_name}") from None

    def columns(self, key: str, period: Period) -> List[str]:
        layout = self._layout_or_fail()
        item = layout.key_layout(period, key)
        if item is None:
            raise SinkError(f"array sink has no buffer for {key} at {period.long_name}")
        return layout.time_columns(period) + list(item.columns)

    def to_frame(self, key: str, period: Period) -> pd.DataFrame:
        """Return the written rows of one buffer as a DataFrame."""

        arr = self.array(key, period)
        frame = pd.DataFrame(arr[: self.irow[period]], columns=self.columns(key, period))
        time_cols = self._layout_or_fail().time_columns(period)
        frame[time_cols] = frame[time_cols].astype("int64")
        return frame

    def to_table(self, key: str, period: Period) -> pa.Table:
        return pa.Table.from_pandas(self.to_frame(key, period), preserve_index=False)

    def _layout_or_fail(self) -> OutputLayout:
        if self.layout is None:
            raise SinkError("array sink was not opened")
        return self.layout

    def summary(self) -> Dict[str, object]:
        return {"rows": {period.token: count for period, count in self.irow.items()}}


__all__ = ["ArraySink"]
