"""Variable descriptor table resolved once before the first simulated day.

The table combines the parsed output setup with the site features: every
configured key is looked up in the catalogue, its summary type and periods
are normalised, its valid day window is recorded, and its output columns
are resolved. Fatal problems raise :class:`~ecoflux.errors.ConfigurationError`;
recoverable ones emit a :class:`~ecoflux.warnings.ConfigurationWarning`
once per key and either substitute a safe setting or disable the key.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from .errors import ConfigurationError
from .keys import LEGACY_MARKERS, DomainObject, SummaryType, VariableKey, lookup
from .schema import Config, OutputKeySetup, OutputSetup, SiteFeatures
from .timeline import Clock, Period, days_in_year
from .warnings import ConfigurationWarning

logger = logging.getLogger(__name__)


@dataclass
class KeyDescriptor:
    """Resolved settings for one configured key."""

    key: VariableKey
    summary: SummaryType
    periods: Tuple[Period, ...]
    first_doy_orig: int
    last_doy_orig: int
    columns: List[str]
    active: bool = True
    first_doy: int = field(init=False)
    last_doy: int = field(init=False)

    def __post_init__(self) -> None:
        self.first_doy = self.first_doy_orig
        self.last_doy = self.last_doy_orig

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def domain(self) -> DomainObject:
        return self.key.domain

    @property
    def ncol(self) -> int:
        return len(self.columns)

    def in_window(self, doy: int) -> bool:
        return self.first_doy <= doy <= self.last_doy

    def clamp(self, first_doy: int, last_doy: int) -> None:
        self.first_doy = max(self.first_doy_orig, first_doy)
        self.last_doy = min(self.last_doy_orig, last_doy)


class DescriptorTable:
    """Per-key output settings shared by the collector, finalizer and dispatch loop."""

    def __init__(
        self,
        setup: OutputSetup,
        site: Optional[SiteFeatures] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.site = site if site is not None else SiteFeatures()
        self.clock = clock
        self.separator = setup.separator
        self.notices: List[str] = []
        self._entries: Dict[str, KeyDescriptor] = {}
        for row in setup.keys:
            self._add_row(row, setup.timestep)
        logger.info(
            "Descriptor table: %d active key(s) [%s]",
            len(self.active_keys()),
            ", ".join(self.active_keys()),
        )

    @classmethod
    def from_config(cls, cfg: Config, clock: Optional[Clock] = None) -> "DescriptorTable":
        return cls(cfg.output, cfg.site, clock)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def _notice(self, name: str, message: str) -> None:
        text = f"{name}: {message}"
        self.notices.append(text)
        logger.warning(text)
        warnings.warn(text, ConfigurationWarning, stacklevel=3)

    def _add_row(self, row: OutputKeySetup, timestep: Optional[List[Period]]) -> None:
        name = row.key
        if name in LEGACY_MARKERS:
            self._notice(name, "output key is currently unimplemented; ignoring it")
            return
        key = lookup(name)
        summary = row.summary
        if summary is SummaryType.OFF:
            logger.debug("%s is OFF", name)
            return

        periods = timestep if timestep is not None else row.periods
        first_doy, last_doy = row.first_doy, row.last_doy
        if key.summary_override is not None:
            summary = key.summary_override
        if key.period_override is not None:
            periods = list(key.period_override)
        if key.window_override is not None:
            first_doy, last_doy = key.window_override
        if not periods:
            raise ConfigurationError(f"{name}: no output periods requested (set periods or output.timestep)")

        if summary is SummaryType.FIN and not key.layered:
            self._notice(name, "summary type FIN is meaningless for a non-layered key; using AVG instead")
            summary = SummaryType.AVG

        active = True
        if key.requires is not None and not bool(getattr(self.site, key.requires, False)):
            self._notice(name, f"cannot produce output because site.{key.requires} is disabled")
            active = False

        ordered: List[Period] = []
        for period in periods:
            if period not in ordered:
                ordered.append(period)
        descriptor = KeyDescriptor(
            key=key,
            summary=summary,
            periods=tuple(sorted(ordered)),
            first_doy_orig=first_doy,
            last_doy_orig=last_doy,
            columns=key.shape.columns(self.site),
            active=active,
        )
        if active and descriptor.ncol == 0:
            self._notice(name, "has no output columns for this site; disabling it")
            descriptor.active = False
        self._entries[name] = descriptor

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def _get(self, name: str) -> Optional[KeyDescriptor]:
        key = lookup(name)
        return self._entries.get(key.name)

    def descriptor(self, name: str) -> KeyDescriptor:
        entry = self._get(name)
        if entry is None or not entry.active:
            raise ConfigurationError(f"Output key {name} is not active")
        return entry

    def is_active(self, name: str) -> bool:
        entry = self._get(name)
        return entry is not None and entry.active

    def periods_of(self, name: str) -> Tuple[Period, ...]:
        entry = self._get(name)
        if entry is None or not entry.active:
            return ()
        return entry.periods

    def summary_type_of(self, name: str) -> SummaryType:
        entry = self._get(name)
        if entry is None or not entry.active:
            return SummaryType.OFF
        return entry.summary

    def valid_window_of(self, name: str, year: int) -> Tuple[int, int]:
        """Return the key's valid day window in ``year``, clamped to the simulated days."""

        entry = self.descriptor(name)
        if self.clock is not None:
            first, last = self.clock.bounds(year)
        else:
            first, last = 1, days_in_year(year)
        return max(entry.first_doy_orig, first), min(entry.last_doy_orig, last)

    def new_year(self, first_doy: int, last_doy: int) -> None:
        """Re-clamp every key's window against the simulated days of a new year."""

        for entry in self._entries.values():
            entry.clamp(first_doy, last_doy)

    def columns_of(self, name: str) -> List[str]:
        return list(self.descriptor(name).columns)

    def ncol_of(self, name: str) -> int:
        return self.descriptor(name).ncol

    def active_keys(self) -> List[str]:
        return [name for name, entry in self._entries.items() if entry.active]

    def active_descriptors(self) -> List[KeyDescriptor]:
        return [entry for entry in self._entries.values() if entry.active]

    def keys_for(self, domain: DomainObject) -> List[KeyDescriptor]:
        return [entry for entry in self.active_descriptors() if entry.domain == domain]

    def domains_in_use(self) -> List[DomainObject]:
        return [domain for domain in DomainObject if self.keys_for(domain)]

    def periods_in_use(self) -> Tuple[Period, ...]:
        used = set()
        for entry in self.active_descriptors():
            used.update(entry.periods)
        return tuple(sorted(used))

    def keys_for_period(self, period: Period) -> List[KeyDescriptor]:
        return [entry for entry in self.active_descriptors() if period in entry.periods]

    def __iter__(self) -> Iterator[KeyDescriptor]:
        return iter(self.active_descriptors())

    def __len__(self) -> int:
        return len(self.active_keys())


__all__ = ["KeyDescriptor", "DescriptorTable"]
