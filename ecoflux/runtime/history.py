"""Column-oriented row buffers used by the columnar sinks."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np
import pyarrow as pa


class ColumnarBuffer:
    """Append-only table with a fixed leading set of integer columns.

    ``index_columns`` hold the time header (``iteration``, ``Year``,
    ``Week``...) and are stored as int32; every other column is float64
    and missing values become NaN.
    """

    def __init__(self, index_columns: Iterable[str], value_columns: Iterable[str] = ()) -> None:
        self._index_columns: List[str] = list(index_columns)
        self._value_columns: List[str] = []
        self._data: Dict[str, List[float]] = {name: [] for name in self._index_columns}
        self._row_count = 0
        for name in value_columns:
            self._add_value_column(name)

    def _add_value_column(self, name: str) -> None:
        if name in self._data:
            return
        self._data[name] = [np.nan] * self._row_count
        self._value_columns.append(name)

    def __len__(self) -> int:
        return self._row_count

    def __bool__(self) -> bool:
        return self._row_count > 0

    def append_row(self, index: Mapping[str, int], values: Optional[Mapping[str, float]] = None) -> None:
        values = values or {}
        for name in values:
            if name not in self._data:
                self._add_value_column(name)
        for name in self._index_columns:
            self._data[name].append(int(index[name]))
        for name in self._value_columns:
            self._data[name].append(float(values.get(name, np.nan)))
        self._row_count += 1

    def clear(self) -> None:
        for column in self._data.values():
            column.clear()
        self._row_count = 0

    def schema(self) -> pa.Schema:
        fields = [pa.field(name, pa.int32()) for name in self._index_columns]
        fields.extend(pa.field(name, pa.float64()) for name in self._value_columns)
        return pa.schema(fields)

    def to_table(self) -> pa.Table:
        arrays = [pa.array(self._data[name], type=pa.int32()) for name in self._index_columns]
        arrays.extend(pa.array(self._data[name], type=pa.float64()) for name in self._value_columns)
        return pa.Table.from_arrays(arrays, schema=self.schema())


__all__ = ["ColumnarBuffer"]
