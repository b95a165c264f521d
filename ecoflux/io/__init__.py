"""Output sinks and file helpers."""
from . import writer, sinks, outarray, iteration, parquet

__all__ = ["writer", "sinks", "outarray", "iteration", "parquet"]
