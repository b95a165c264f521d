"""Configuration schema for ecoflux output runs.

The models mirror the YAML layout consumed by :func:`ecoflux.config_utils.load_config`.
Token fields (summary types, period tokens, the separator shorthands) are
normalised here so that downstream components only ever see enum values.

Example::

    simulation:
      start_year: 1980
      end_year: 1982
    site:
      n_layers: 6
    output:
      separator: c
      keys:
        - {key: TEMP, summary: AVG, periods: [DY, MO]}
        - {key: SWCBULK, summary: FIN, periods: YR, last_doy: end}
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator

from . import constants
from .errors import ConfigurationError
from .keys import SummaryType
from .timeline import Period


def _parse_periods(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Period):
        items = [value]
    elif isinstance(value, str):
        items = [tok for tok in re.split(r"[\s,]+", value) if tok]
    else:
        items = list(value)
    return [Period.from_token(item) for item in items]


class OutputKeySetup(BaseModel):
    """One row of the output setup: a key and how it is summarised."""

    key: str = Field(..., description="Catalogue name of the output key, e.g. TEMP")
    summary: SummaryType = Field(..., description="OFF, SUM, AVG or FIN")
    periods: Optional[List[Period]] = Field(
        None,
        description="Requested periods (DY, WK, MO, YR); overridden by output.timestep",
    )
    first_doy: int = Field(1, ge=1, le=constants.END_OF_YEAR_DOY, description="First valid day of year")
    last_doy: int = Field(
        constants.END_OF_YEAR_DOY,
        description="Last valid day of year; 'end' means through the end of the year",
    )

    @field_validator("key", mode="before")
    def _normalise_key(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip().upper()
            if not text:
                raise ConfigurationError("output.keys[].key must not be empty")
            return text
        return value

    @field_validator("summary", mode="before")
    def _parse_summary(cls, value: Any) -> SummaryType:
        return SummaryType.from_token(value)

    @field_validator("periods", mode="before")
    def _parse_period_tokens(cls, value: Any) -> Any:
        return _parse_periods(value)

    @field_validator("last_doy", mode="before")
    def _parse_last_doy(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if text.upper() == constants.END_OF_YEAR_TOKEN:
                return constants.END_OF_YEAR_DOY
            try:
                return int(text)
            except ValueError:
                raise ConfigurationError(f"Invalid last_doy {value!r}; expected an integer or 'end'") from None
        return value

    @field_validator("last_doy")
    def _check_last_doy(cls, value: int) -> int:
        if value == 0:
            raise ConfigurationError("last_doy must not be 0")
        if value < 1 or value > constants.END_OF_YEAR_DOY:
            raise ConfigurationError(f"last_doy={value} is outside 1..{constants.END_OF_YEAR_DOY}")
        return value

    @field_serializer("summary")
    def _dump_summary(self, value: SummaryType) -> str:
        return value.name

    @field_serializer("periods")
    def _dump_periods(self, value: Optional[List[Period]]) -> Optional[List[str]]:
        return None if value is None else [period.token for period in value]

    @model_validator(mode="after")
    def _check_window(self) -> "OutputKeySetup":
        if self.first_doy > self.last_doy:
            raise ConfigurationError(
                f"{self.key}: first_doy ({self.first_doy}) must not exceed last_doy ({self.last_doy})"
            )
        return self


class OutputSetup(BaseModel):
    """Output selection table plus the global output directives."""

    separator: str = Field(constants.DEFAULT_SEPARATOR, description="Field separator or t/s/c shorthand")
    timestep: Optional[List[Period]] = Field(
        None,
        description="Periods applied to every key, overriding the per-key periods",
    )
    keys: List[OutputKeySetup] = Field(default_factory=list)

    @field_validator("separator", mode="before")
    def _resolve_separator(cls, value: Any) -> Any:
        if value is None:
            return constants.DEFAULT_SEPARATOR
        text = str(value)
        if text.strip().lower() in constants.SEPARATOR_ALIASES:
            return constants.SEPARATOR_ALIASES[text.strip().lower()]
        if len(text) != 1:
            raise ConfigurationError(f"output.separator must be a single character, got {value!r}")
        return text

    @field_validator("timestep", mode="before")
    def _parse_timestep(cls, value: Any) -> Any:
        return _parse_periods(value)

    @field_serializer("timestep")
    def _dump_timestep(self, value: Optional[List[Period]]) -> Optional[List[str]]:
        return None if value is None else [period.token for period in value]

    @model_validator(mode="after")
    def _check_duplicates(self) -> "OutputSetup":
        seen = set()
        for row in self.keys:
            if row.key in seen:
                raise ConfigurationError(f"Output key {row.key} is listed more than once")
            seen.add(row.key)
        return self


class SiteFeatures(BaseModel):
    """Site dimensions that determine the shape of layered outputs."""

    n_layers: int = Field(3, ge=1, le=constants.MAX_LAYERS, description="Number of soil layers")
    n_evap_layers: Optional[int] = Field(None, ge=0, description="Soil layers contributing to bare-soil evaporation")
    n_veg_types: Literal[4] = Field(len(constants.VEG_TYPES), description="Vegetation types (tree, shrub, forbs, grass)")
    deep_drainage: bool = Field(False, description="Whether drainage below the lowest layer is simulated")
    n_estab_species: int = Field(0, ge=0, description="Number of species tracked for establishment")

    @model_validator(mode="after")
    def _check_evap_layers(self) -> "SiteFeatures":
        if self.n_evap_layers is None:
            self.n_evap_layers = self.n_layers
        elif self.n_evap_layers > self.n_layers:
            raise ConfigurationError(
                f"site.n_evap_layers ({self.n_evap_layers}) must not exceed n_layers ({self.n_layers})"
            )
        return self


class Simulation(BaseModel):
    start_year: int = Field(..., description="First simulated calendar year")
    end_year: int = Field(..., description="Last simulated calendar year")
    start_doy: int = Field(1, ge=1, le=366, description="First simulated day of the first year")
    end_doy: Optional[int] = Field(None, ge=1, le=366, description="Last simulated day of the last year")
    iterations: int = Field(1, ge=1, description="Number of repeated runs")
    seed: Optional[int] = Field(None, description="Seed for stochastic daily sources")
    noise_sigma: float = Field(
        0.0,
        ge=0.0,
        description="Relative multiplicative noise applied to daily inputs on repeated runs",
    )

    @model_validator(mode="after")
    def _check_years(self) -> "Simulation":
        if self.end_year < self.start_year:
            raise ConfigurationError(
                f"simulation.end_year ({self.end_year}) must not precede start_year ({self.start_year})"
            )
        return self


class Sinks(BaseModel):
    """Which output consumers are attached to the dispatch loop."""

    text: bool = True
    array: bool = False
    parquet: bool = False
    iteration_summary: bool = Field(False, description="Cross-iteration mean/SD tables (iterations > 1)")
    store_all_iterations: bool = Field(False, description="Write text outputs for every iteration")
    prefix: str = Field("ecoflux", description="File name prefix for written outputs")
    compression: Literal["snappy", "zstd", "gzip", "none"] = "snappy"
    flush_rows: int = Field(0, ge=0, description="Rows per Parquet chunk; 0 keeps all rows in memory")


class IO(BaseModel):
    outdir: Path = Field(Path("out"), description="Directory receiving all outputs")
    quiet: bool = False
    progress: bool = False
    daily_input: Optional[Path] = Field(None, description="CSV or Parquet file of daily values")


class Config(BaseModel):
    """Top-level configuration object."""

    simulation: Simulation
    site: SiteFeatures = Field(default_factory=SiteFeatures)
    output: OutputSetup = Field(default_factory=OutputSetup)
    sinks: Sinks = Field(default_factory=Sinks)
    io: IO = Field(default_factory=IO)


__all__ = [
    "OutputKeySetup",
    "OutputSetup",
    "SiteFeatures",
    "Simulation",
    "Sinks",
    "IO",
    "Config",
]
