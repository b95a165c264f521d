"""Structured warning classes for the :mod:`ecoflux` package."""
from __future__ import annotations


class EcofluxWarning(UserWarning):
    """Base warning class for ecoflux."""


class ConfigurationWarning(EcofluxWarning):
    """Output setup entries that were substituted or disabled."""


__all__ = [
    "EcofluxWarning",
    "ConfigurationWarning",
]
