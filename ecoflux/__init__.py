"""Temporal output aggregation and multi-sink dispatch for a daily ecohydrology simulator."""
from . import constants
from .errors import EcofluxError

__version__ = "0.1.0"

__all__ = ["constants", "EcofluxError", "__version__"]
