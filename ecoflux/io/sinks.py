"""Sink contract, the shared output layout, and the delimited text sink.

Every sink receives the same call sequence from the dispatch loop::

    open(layout)
    begin_iteration(i)
        begin_row(period, year, period_index)
        append_fields(key, values)   # zero or more times
        end_row()
    end_iteration()
    close()

Sinks own all of their buffers and file handles and never talk to each
other. Fields for a key that has no column reserved in the current
period are ignored.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .. import constants
from ..descriptors import DescriptorTable
from ..errors import SinkError, WiringError
from ..keys import ShapeKind
from ..renderers import RendererRegistry
from ..timeline import Clock, Period
from . import writer

logger = logging.getLogger(__name__)

GROUP_REGULAR = "regular"
GROUP_SOIL = "soil"


@dataclass(frozen=True)
class KeyLayout:
    name: str
    columns: Tuple[str, ...]
    labels: Tuple[str, ...]
    group: str

    @property
    def ncol(self) -> int:
        return len(self.columns)


@dataclass
class OutputLayout:
    """Column reservations shared by all sinks of a run."""

    periods: Tuple[Period, ...]
    keys: Dict[Period, List[KeyLayout]]
    nrow: Dict[Period, int]
    outdir: Path = Path("out")
    prefix: str = "ecoflux"
    separator: str = constants.DEFAULT_SEPARATOR
    iterations: int = 1
    digits: int = constants.OUT_DIGITS

    @classmethod
    def build(
        cls,
        table: DescriptorTable,
        registry: RendererRegistry,
        clock: Clock,
        *,
        outdir: Path = Path("out"),
        prefix: str = "ecoflux",
        iterations: int = 1,
    ) -> "OutputLayout":
        keys: Dict[Period, List[KeyLayout]] = {}
        periods = table.periods_in_use()
        for period in periods:
            entries = []
            for entry in table.keys_for_period(period):
                renderer = registry.get(entry.name)
                group = GROUP_SOIL if entry.key.shape.kind in (ShapeKind.LAYERS, ShapeKind.VEG_LAYERS) else GROUP_REGULAR
                entries.append(
                    KeyLayout(
                        name=entry.name,
                        columns=tuple(renderer.columns),
                        labels=tuple(renderer.labels()),
                        group=group,
                    )
                )
            keys[period] = entries
        registry.freeze()
        return cls(
            periods=periods,
            keys=keys,
            nrow={period: clock.nrow(period) for period in periods},
            outdir=Path(outdir),
            prefix=prefix,
            separator=table.separator,
            iterations=iterations,
        )

    def key_layout(self, period: Period, name: str) -> Optional[KeyLayout]:
        for item in self.keys.get(period, []):
            if item.name == name:
                return item
        return None

    def time_columns(self, period: Period) -> List[str]:
        if period is Period.YEAR:
            return ["Year"]
        return ["Year", period.long_name]

    def labels(self, period: Period, group: Optional[str] = None) -> List[str]:
        out: List[str] = []
        for item in self.keys.get(period, []):
            if group is None or item.group == group:
                out.extend(item.labels)
        return out

    def groups(self, period: Period) -> List[str]:
        found = {item.group for item in self.keys.get(period, [])}
        return [group for group in (GROUP_REGULAR, GROUP_SOIL) if group in found]


@dataclass
class Row:
    period: Period
    year: int
    index: int
    fields: Dict[str, np.ndarray] = field(default_factory=dict)


class Sink:
    """Base class implementing the row protocol and its misuse checks."""

    name = "sink"

    def __init__(self) -> None:
        self.layout: Optional[OutputLayout] = None
        self.iteration = 0
        self._row: Optional[Row] = None
        self._closed = False
        self._last_label: Dict[Period, Tuple[int, int]] = {}
        self._reserved: Dict[Period, Dict[str, KeyLayout]] = {}

    def open(self, layout: OutputLayout) -> None:
        if self._closed:
            raise SinkError(f"{self.name}: cannot reopen a closed sink")
        self.layout = layout
        self._reserved = {period: {item.name: item for item in items} for period, items in layout.keys.items()}

    def _require_open(self) -> OutputLayout:
        if self._closed:
            raise SinkError(f"{self.name}: sink is closed")
        if self.layout is None:
            raise SinkError(f"{self.name}: sink was not opened")
        return self.layout

    def begin_iteration(self, iteration: int) -> None:
        self._require_open()
        self.iteration = iteration
        self._last_label.clear()

    def end_iteration(self) -> None:
        if self._row is not None:
            raise SinkError(f"{self.name}: iteration ended inside an open {self._row.period.long_name} row")

    def begin_row(self, period: Period, year: int, period_index: int) -> None:
        self._require_open()
        if self._row is not None:
            raise SinkError(f"{self.name}: begin_row({period.token}) while a {self._row.period.token} row is open")
        label = (year, period_index)
        previous = self._last_label.get(period)
        if previous is not None and label <= previous:
            raise WiringError(
                f"{self.name}: {period.long_name} row {label} emitted after {previous}; rows must follow the calendar"
            )
        self._last_label[period] = label
        self._row = Row(period, year, period_index)
        self._on_begin_row(self._row)

    def append_fields(self, key: str, values: Sequence[float]) -> None:
        if self._row is None:
            raise SinkError(f"{self.name}: append_fields({key}) outside of a row")
        item = self._reserved.get(self._row.period, {}).get(key)
        if item is None:
            return
        arr = np.asarray(values, dtype=float).reshape(-1)
        if arr.size != item.ncol:
            raise WiringError(f"{self.name}: {key} has {item.ncol} reserved column(s), got {arr.size} field(s)")
        self._row.fields[key] = arr.copy()
        self._on_fields(self._row, key, self._row.fields[key])

    def end_row(self) -> None:
        if self._row is None:
            raise SinkError(f"{self.name}: end_row without begin_row")
        row = self._row
        self._row = None
        self._on_end_row(row)

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    # hooks
    def _on_begin_row(self, row: Row) -> None:
        pass

    def _on_fields(self, row: Row, key: str, values: np.ndarray) -> None:
        pass

    def _on_end_row(self, row: Row) -> None:
        pass

    def summary(self) -> Dict[str, object]:
        return {}


class TextSink(Sink):
    """Delimited text, one stream per (group, period).

    Without ``store_all_iterations`` every iteration rewrites the same
    files, so they hold the last iteration once the run completes.
    """

    name = "text"

    def __init__(self, *, store_all_iterations: bool = False) -> None:
        super().__init__()
        self.store_all_iterations = store_all_iterations
        self._streams: Dict[Tuple[str, Period], IO[str]] = {}
        self.paths: List[Path] = []
        self.rows_written: Dict[Period, int] = {}

    def path_for(self, group: str, period: Period) -> Path:
        layout = self._require_open()
        stem = f"{layout.prefix}_{group}_{period.long_name.lower()}"
        if self.store_all_iterations:
            stem += f"_i{self.iteration + 1}"
        return layout.outdir / f"{stem}.csv"

    def begin_iteration(self, iteration: int) -> None:
        super().begin_iteration(iteration)
        self._close_streams()
        layout = self._require_open()
        for period in layout.periods:
            for group in layout.groups(period):
                path = self.path_for(group, period)
                writer._ensure_parent(path)
                stream = path.open("w", encoding="utf-8", newline="")
                header = layout.time_columns(period) + layout.labels(period, group)
                stream.write(layout.separator.join(header) + "\n")
                self._streams[(group, period)] = stream
                if path not in self.paths:
                    self.paths.append(path)
        logger.debug("text sink opened %d stream(s) for iteration %d", len(self._streams), iteration)

    def _format(self, values: Optional[np.ndarray], ncol: int, digits: int) -> List[str]:
        if values is None:
            return ["NA"] * ncol
        return ["NA" if not np.isfinite(v) else f"{v:.{digits}f}" for v in values]

    def _on_end_row(self, row: Row) -> None:
        layout = self._require_open()
        for group in layout.groups(row.period):
            stream = self._streams.get((group, row.period))
            if stream is None:
                raise SinkError(f"text sink has no {group} stream for {row.period.long_name}")
            parts = [str(row.year)]
            if row.period is not Period.YEAR:
                parts.append(str(row.index))
            for item in layout.keys[row.period]:
                if item.group != group:
                    continue
                parts.extend(self._format(row.fields.get(item.name), item.ncol, layout.digits))
            stream.write(layout.separator.join(parts) + "\n")
        self.rows_written[row.period] = self.rows_written.get(row.period, 0) + 1

    def end_iteration(self) -> None:
        super().end_iteration()
        for stream in self._streams.values():
            stream.flush()

    def _close_streams(self) -> None:
        for stream in self._streams.values():
            stream.close()
        self._streams.clear()

    def close(self) -> None:
        self._close_streams()
        super().close()

    def summary(self) -> Dict[str, object]:
        return {"files": [str(path) for path in self.paths]}


__all__ = [
    "GROUP_REGULAR",
    "GROUP_SOIL",
    "KeyLayout",
    "OutputLayout",
    "Row",
    "Sink",
    "TextSink",
]
