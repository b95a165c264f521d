"""Columnar Parquet sink.

Rows of every period are buffered in a :class:`ColumnarBuffer` and,
when ``flush_rows`` is positive, spilled to numbered chunk files under
``<outdir>/chunks``. At close the chunks of each period are merged into
``<prefix>_<period>.parquet`` and removed.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Optional

import pyarrow as pa
import pyarrow.parquet as pq

from ..runtime.history import ColumnarBuffer
from ..timeline import Period
from . import writer
from .sinks import OutputLayout, Row, Sink

logger = logging.getLogger(__name__)


class ParquetSink(Sink):
    name = "parquet"

    def __init__(self, *, compression: str = "snappy", flush_rows: int = 0, cleanup_chunks: bool = True) -> None:
        super().__init__()
        self.compression = compression
        self.flush_rows = int(flush_rows) if flush_rows > 0 else 0
        self.cleanup_chunks = bool(cleanup_chunks)
        self.buffers: Dict[Period, ColumnarBuffer] = {}
        self.chunks: Dict[Period, List[Path]] = {}
        self.outputs: Dict[Period, Path] = {}

    def open(self, layout: OutputLayout) -> None:
        super().open(layout)
        for period in layout.periods:
            index_cols = ["iteration"] + layout.time_columns(period)
            self.buffers[period] = ColumnarBuffer(index_cols, layout.labels(period))
            self.chunks[period] = []

    def _on_end_row(self, row: Row) -> None:
        layout = self._require_open()
        index = {"iteration": self.iteration + 1, "Year": row.year}
        if row.period is not Period.YEAR:
            index[row.period.long_name] = row.index
        values: Dict[str, float] = {}
        for item in layout.keys[row.period]:
            fields = row.fields.get(item.name)
            if fields is None:
                continue
            values.update(zip(item.labels, fields.tolist()))
        buffer = self.buffers[row.period]
        buffer.append_row(index, values)
        if self.flush_rows and len(buffer) >= self.flush_rows:
            self.flush(row.period)

    def _chunk_path(self, period: Period) -> Path:
        layout = self._require_open()
        number = len(self.chunks[period])
        return layout.outdir / "chunks" / f"{layout.prefix}_{period.long_name.lower()}_chunk_{number:05d}.parquet"

    def flush(self, period: Period) -> Optional[Path]:
        buffer = self.buffers[period]
        if not buffer:
            return None
        path = self._chunk_path(period)
        writer.write_parquet_table(buffer.to_table(), path, compression=self.compression)
        self.chunks[period].append(path)
        buffer.clear()
        logger.debug("parquet sink flushed %s", path)
        return path

    def close(self) -> None:
        if self.closed:
            return
        layout = self._require_open()
        for period in layout.periods:
            self.flush(period)
            destination = layout.outdir / f"{layout.prefix}_{period.long_name.lower()}.parquet"
            if not self.chunks[period]:
                writer.write_parquet_table(
                    self.buffers[period].to_table(), destination, compression=self.compression
                )
                self.outputs[period] = destination
                continue
            if merge_parquet_chunks(self.chunks[period], destination, compression=self.compression):
                self.outputs[period] = destination
                if self.cleanup_chunks:
                    cleanup_chunk_files(self.chunks[period])
        logger.info("parquet sink wrote %d file(s)", len(self.outputs))
        super().close()

    def summary(self) -> Dict[str, object]:
        return {"files": [str(path) for path in self.outputs.values()]}


def cleanup_chunk_files(chunks: List[Path]) -> List[Path]:
    removed: List[Path] = []
    for path in chunks:
        try:
            path.unlink()
            removed.append(path)
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Failed to remove chunk %s: %s", path, exc)
    return removed


def merge_parquet_chunks(chunks: List[Path], destination: Path, *, compression: str = "snappy") -> bool:
    """Merge Parquet chunk files into ``destination``.

    Schemas are unified so chunks written before a column first appeared
    are padded with nulls.
    """
    existing = [path for path in chunks if path.exists()]
    if not existing:
        return False
    writer._ensure_parent(destination)
    schemas = [pq.read_schema(path) for path in existing]
    unified_schema = pa.unify_schemas(schemas, promote_options="permissive")

    parquet_writer: Optional[pq.ParquetWriter] = None
    try:
        for path in existing:
            table = pq.read_table(path)
            for field in unified_schema:
                if field.name not in table.column_names:
                    table = table.append_column(field.name, pa.nulls(len(table), type=field.type))
            table = table.select([f.name for f in unified_schema]).cast(unified_schema)
            if parquet_writer is None:
                parquet_writer = pq.ParquetWriter(
                    destination, unified_schema, compression=writer._compression(compression)
                )
            parquet_writer.write_table(table)
    finally:
        if parquet_writer is not None:
            parquet_writer.close()
    return parquet_writer is not None and destination.exists()


__all__ = ["ParquetSink", "merge_parquet_chunks", "cleanup_chunk_files"]
