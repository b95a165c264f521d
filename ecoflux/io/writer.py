"""File helpers shared by the sinks and the run controller.

Period tables go to Parquet through :mod:`pyarrow` and to delimited text
through :mod:`pandas`; run metadata (``summary.json``, ``run_config.json``)
is written as indented JSON. Missing parent directories are created.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from .. import constants


def _ensure_parent(path: Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def _compression(name: str):
    return None if name == "none" else name


def write_parquet_table(table: pa.Table, path: Path, *, compression: str = "snappy") -> None:
    _ensure_parent(path)
    pq.write_table(table, path, compression=_compression(compression))


def write_csv(
    df: pd.DataFrame,
    path: Path,
    *,
    sep: str = constants.DEFAULT_SEPARATOR,
    digits: int = constants.OUT_DIGITS,
) -> None:
    """Write ``df`` without its index; floats get ``digits`` decimals and gaps read ``NA``."""

    _ensure_parent(path)
    df.to_csv(path, sep=sep, index=False, float_format=f"%.{digits}f", na_rep="NA")


def _write_json(payload: Mapping[str, Any], path: Path) -> None:
    _ensure_parent(path)
    with Path(path).open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, sort_keys=True, default=str)
        fh.write("\n")


def write_summary(summary: Mapping[str, Any], path: Path) -> None:
    """Write the end-of-run summary (rows per period, sink files, notices)."""

    _write_json(summary, path)


def write_run_config(config: Mapping[str, Any], path: Path) -> None:
    """Write the validated configuration the run actually used."""

    _write_json(config, path)


__all__ = [
    "write_parquet_table",
    "write_csv",
    "write_summary",
    "write_run_config",
]
