"""Custom exceptions for the :mod:`ecoflux` package."""
from __future__ import annotations


class EcofluxError(Exception):
    """Base exception for output aggregation errors."""


class ConfigurationError(EcofluxError, ValueError):
    """Invalid output setup or site/simulation parameters; aborts run setup."""


class WiringError(EcofluxError, RuntimeError):
    """Broken wiring between descriptor table, accumulators and sinks."""


class SinkError(EcofluxError, RuntimeError):
    """A sink was driven outside of its row or run lifecycle."""


__all__ = [
    "EcofluxError",
    "ConfigurationError",
    "WiringError",
    "SinkError",
]
