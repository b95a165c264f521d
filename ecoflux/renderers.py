"""Shape-generic renderers turning finalized values into flat field rows.

A renderer knows the column labels of one key and produces the ordered
field vector handed to the sinks. The registry resolves one renderer per
active key at startup; keys without a renderer fall back to
:class:`NullRenderer`, which yields no fields.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Sequence

import numpy as np

from .descriptors import DescriptorTable, KeyDescriptor
from .errors import WiringError
from .keys import ShapeKind

logger = logging.getLogger(__name__)


class Renderer:
    """Base renderer: fields are emitted in column order."""

    def __init__(self, name: str, columns: Sequence[str]) -> None:
        self.name = name
        self.columns = list(columns)

    @property
    def ncol(self) -> int:
        return len(self.columns)

    def labels(self) -> List[str]:
        return [f"{self.name}_{column}" for column in self.columns]

    def render(self, values: np.ndarray) -> np.ndarray:
        flat = np.asarray(values, dtype=float).reshape(-1)
        if flat.size != self.ncol:
            raise WiringError(f"{self.name}: renderer expects {self.ncol} field(s), got {flat.size}")
        return flat


class ScalarRenderer(Renderer):
    """Fixed list of named fields (weather, surface fluxes, biomass)."""


class LayerRenderer(Renderer):
    """One field per soil layer."""


class VegLayerRenderer(Renderer):
    """Prefix-major blocks of per-layer fields, e.g. ``total`` then each vegetation type."""

    def __init__(self, name: str, columns: Sequence[str], n_blocks: int) -> None:
        super().__init__(name, columns)
        if n_blocks <= 0 or self.ncol % n_blocks:
            raise WiringError(f"{name}: {self.ncol} column(s) cannot be split into {n_blocks} block(s)")
        self.n_blocks = n_blocks

    def render(self, values: np.ndarray) -> np.ndarray:
        arr = np.asarray(values, dtype=float)
        if arr.ndim == 2:
            if arr.shape[0] != self.n_blocks:
                raise WiringError(f"{self.name}: expected {self.n_blocks} block(s), got {arr.shape[0]}")
            arr = arr.reshape(-1)
        return super().render(arr)


class SpeciesRenderer(Renderer):
    """Establishment day per species; 0 when a species did not establish."""

    def render(self, values: np.ndarray) -> np.ndarray:
        return np.rint(super().render(values))


class NullRenderer(Renderer):
    def __init__(self, name: str = "") -> None:
        super().__init__(name, [])

    def render(self, values: np.ndarray) -> np.ndarray:
        return np.empty(0, dtype=float)


def renderer_for(entry: KeyDescriptor) -> Renderer:
    shape = entry.key.shape
    if shape.kind is ShapeKind.FIXED:
        return ScalarRenderer(entry.name, entry.columns)
    if shape.kind is ShapeKind.LAYERS:
        return LayerRenderer(entry.name, entry.columns)
    if shape.kind is ShapeKind.VEG_LAYERS:
        return VegLayerRenderer(entry.name, entry.columns, len(shape.names))
    return SpeciesRenderer(entry.name, entry.columns)


class RendererRegistry:
    """Mapping from key name to renderer, built once per run."""

    def __init__(self, table: DescriptorTable) -> None:
        self._renderers: Dict[str, Renderer] = {}
        self.frozen = False
        for entry in table.active_descriptors():
            self._renderers[entry.name] = renderer_for(entry)

    def register(self, name: str, renderer: Renderer) -> None:
        """Replace the renderer of ``name``; only allowed before the output layout is built."""

        if self.frozen:
            raise WiringError(f"cannot register a renderer for {name}: output columns are already laid out")
        self._renderers[name] = renderer

    def freeze(self) -> None:
        self.frozen = True

    def get(self, name: str) -> Renderer:
        renderer = self._renderers.get(name)
        if renderer is None:
            logger.debug("no renderer registered for %s; using NullRenderer", name)
            renderer = NullRenderer(name)
            self._renderers[name] = renderer
        return renderer

    def __contains__(self, name: str) -> bool:
        return name in self._renderers


__all__ = [
    "Renderer",
    "ScalarRenderer",
    "LayerRenderer",
    "VegLayerRenderer",
    "SpeciesRenderer",
    "NullRenderer",
    "RendererRegistry",
    "renderer_for",
]
