"""Calendar and output constants shared by the aggregation engine.

Values follow the conventions of the daily simulator: weeks are fixed
seven-day blocks counted from the first day of each calendar year, so the
last week of a year is short (one day, two in leap years).
"""
from __future__ import annotations

from typing import Tuple

# Days per output week
WKDAYS: int = 7

# Upper bounds used to pre-size in-memory output buffers
MAX_WEEKS: int = 53
MAX_MONTHS: int = 12

# Largest supported number of soil layers
MAX_LAYERS: int = 25

# Floating point decimal digits written to text outputs
OUT_DIGITS: int = 6

# Sentinel accepted for the last valid day of year ("through end of year")
END_OF_YEAR_TOKEN: str = "END"
END_OF_YEAR_DOY: int = 366

# Vegetation types carried by layered transpiration/hydraulic redistribution outputs
VEG_TYPES: Tuple[str, ...] = ("tree", "shrub", "forbs", "grass")

# Separator shorthands accepted by the output setup
SEPARATOR_ALIASES = {"t": "\t", "s": " ", "c": ","}
DEFAULT_SEPARATOR: str = ","

