"""Catalogue of reportable variables ("keys").

Each :class:`VariableKey` names the physical subsystem that produces its
daily values, whether the quantity repeats per soil layer or vegetation
type, and the shape used to derive its output columns once the site
features (number of soil layers, evaporation layers, species) are known.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, List, Optional, Tuple

from . import constants
from .errors import ConfigurationError
from .timeline import Period


class SummaryType(IntEnum):
    """Rule used to derive a period value from its accumulator."""

    OFF = 0
    SUM = 1
    AVG = 2
    FIN = 3

    @classmethod
    def from_token(cls, value: object) -> "SummaryType":
        if isinstance(value, SummaryType):
            return value
        text = str(value).strip().upper()
        try:
            return cls[text]
        except KeyError:
            raise ConfigurationError(
                f"Unknown summary type {value!r}; expected one of OFF, SUM, AVG, FIN"
            ) from None


class DomainObject(str, Enum):
    """Physical subsystem that owns a set of keys."""

    WEATHER = "weather"
    SOIL_WATER = "soil_water"
    VEG_ESTAB = "veg_estab"
    VEG_PROD = "veg_prod"


class ShapeKind(str, Enum):
    FIXED = "fixed"
    LAYERS = "layers"
    VEG_LAYERS = "veg_layers"
    SPECIES = "species"


@dataclass(frozen=True)
class FieldShape:
    """Shape descriptor resolved against site features into column names.

    ``FIXED`` shapes carry their field names. ``LAYERS`` shapes repeat once
    per soil layer, limited by ``layer_source`` (``n_layers`` or
    ``n_evap_layers``) and reduced by ``layer_offset``. ``VEG_LAYERS``
    shapes repeat every prefix over every soil layer. ``SPECIES`` shapes
    have one column per established species.
    """

    kind: ShapeKind
    names: Tuple[str, ...] = ()
    layer_source: str = "n_layers"
    layer_offset: int = 0

    def n_layers(self, site) -> int:
        count = int(getattr(site, self.layer_source)) - self.layer_offset
        return max(count, 0)

    def columns(self, site) -> List[str]:
        if self.kind is ShapeKind.FIXED:
            return list(self.names)
        if self.kind is ShapeKind.LAYERS:
            return [f"Lyr_{idx + 1}" for idx in range(self.n_layers(site))]
        if self.kind is ShapeKind.VEG_LAYERS:
            n_lyr = self.n_layers(site)
            return [f"{prefix}_Lyr_{idx + 1}" for prefix in self.names for idx in range(n_lyr)]
        n_species = int(getattr(site, "n_estab_species", 0))
        return [f"species_{idx + 1}" for idx in range(n_species)]


@dataclass(frozen=True)
class VariableKey:
    """One reportable variable.

    ``categorical`` marks flags, day counts and days of year, which stochastic
    input perturbation leaves untouched.
    """

    name: str
    domain: DomainObject
    layered: bool
    shape: FieldShape
    requires: Optional[str] = None
    summary_override: Optional[SummaryType] = None
    period_override: Optional[Tuple[Period, ...]] = None
    window_override: Optional[Tuple[int, int]] = None
    categorical: bool = False


def _fixed(*names: str) -> FieldShape:
    return FieldShape(ShapeKind.FIXED, tuple(names))


_LAYERS = FieldShape(ShapeKind.LAYERS)
_VEG = constants.VEG_TYPES


def _build_catalogue() -> Dict[str, VariableKey]:
    W = DomainObject.WEATHER
    S = DomainObject.SOIL_WATER
    entries = [
        VariableKey(
            "TEMP",
            W,
            False,
            _fixed("max_C", "min_C", "avg_C", "surfaceTemp_max_C", "surfaceTemp_min_C", "surfaceTemp_avg_C"),
        ),
        VariableKey("PRECIP", W, False, _fixed("ppt", "rain", "snow_fall", "snowmelt", "snowloss")),
        VariableKey("SOILINFILT", W, False, _fixed("soil_inf")),
        VariableKey("RUNOFF", W, False, _fixed("net", "ponded_runoff", "snowmelt_runoff", "ponded_runon")),
        VariableKey("VWCBULK", S, True, _LAYERS),
        VariableKey("VWCMATRIC", S, True, _LAYERS),
        VariableKey("SWCBULK", S, True, _LAYERS),
        VariableKey("SWABULK", S, True, _LAYERS),
        VariableKey("SWAMATRIC", S, True, _LAYERS),
        VariableKey("SWPMATRIC", S, True, _LAYERS),
        VariableKey("WETDAY", S, True, _LAYERS, categorical=True),
        VariableKey("SOILTEMP", S, True, _LAYERS),
        VariableKey("FROZEN", S, True, _LAYERS, categorical=True),
        VariableKey("SWA", S, True, FieldShape(ShapeKind.VEG_LAYERS, tuple(f"swa_{veg}" for veg in _VEG))),
        VariableKey(
            "TRANSP",
            S,
            True,
            FieldShape(ShapeKind.VEG_LAYERS, ("total",) + _VEG),
        ),
        VariableKey("HYDRED", S, True, FieldShape(ShapeKind.VEG_LAYERS, ("total",) + _VEG)),
        VariableKey("EVAPSOIL", S, True, FieldShape(ShapeKind.LAYERS, layer_source="n_evap_layers")),
        VariableKey("LYRDRAIN", S, True, FieldShape(ShapeKind.LAYERS, layer_offset=1)),
        VariableKey("SURFACEWATER", S, False, _fixed("surfaceWater_cm")),
        VariableKey(
            "EVAPSURFACE",
            S,
            False,
            _fixed("evap_total", *(f"evap_{veg}" for veg in _VEG), "evap_litter", "evap_surfaceWater"),
        ),
        VariableKey(
            "INTERCEPTION",
            S,
            False,
            _fixed("int_total", *(f"int_{veg}" for veg in _VEG), "int_litter"),
        ),
        VariableKey("AET", S, False, _fixed("evapotr_cm", "tran_cm", "esoil_cm", "ecnw_cm", "esurf_cm", "esnow_cm")),
        VariableKey("PET", S, False, _fixed("pet_cm", "H_oh_MJm-2", "H_ot_MJm-2", "H_gh_MJm-2", "H_gt_MJm-2")),
        VariableKey("SNOWPACK", S, False, _fixed("snowpackWaterEquivalent_cm", "snowdepth_cm")),
        VariableKey("DEEPSWC", S, False, _fixed("lowLayerDrain_cm"), requires="deep_drainage"),
        VariableKey(
            "ESTABL",
            DomainObject.VEG_ESTAB,
            True,
            FieldShape(ShapeKind.SPECIES),
            summary_override=SummaryType.SUM,
            period_override=(Period.YEAR,),
            window_override=(1, constants.END_OF_YEAR_DOY),
            categorical=True,
        ),
        VariableKey(
            "CO2EFFECTS",
            DomainObject.VEG_PROD,
            True,
            _fixed(*(f"BioMult_{veg}" for veg in _VEG), *(f"WUEMult_{veg}" for veg in _VEG)),
        ),
        VariableKey(
            "BIOMASS",
            DomainObject.VEG_PROD,
            True,
            _fixed(
                "fCover_bare",
                *(f"fCover_{veg}" for veg in _VEG),
                *(f"biomass_{veg}" for veg in _VEG),
                "biomass_litter",
                "biomass_total",
                *(f"biolive_{veg}" for veg in _VEG),
                "biolive_total",
                "bLAI_total",
            ),
        ),
    ]
    return {entry.name: entry for entry in entries}


CATALOGUE: Dict[str, VariableKey] = _build_catalogue()

# Group markers of the legacy text setup; accepted and disabled
LEGACY_MARKERS = frozenset({"WTHR", "ALLH2O", "ET", "ALLVEG"})


def lookup(name: str) -> VariableKey:
    """Return the catalogue entry for ``name`` (case-insensitive)."""

    try:
        return CATALOGUE[str(name).strip().upper()]
    except KeyError:
        raise ConfigurationError(f"Unknown output key {name!r}") from None


__all__ = [
    "SummaryType",
    "DomainObject",
    "ShapeKind",
    "FieldShape",
    "VariableKey",
    "CATALOGUE",
    "LEGACY_MARKERS",
    "lookup",
]
