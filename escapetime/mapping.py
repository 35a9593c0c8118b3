"""Mapping between canvas pixels and the complex plane."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace

import numpy as np


@dataclass(frozen=True)
class View:
    """Region of the complex plane shown on the canvas.

    ``x_offset``/``y_offset`` are the plane coordinates of the canvas centre and
    ``zoom`` is the size of one pixel in plane units.
    """

    x_offset: float = 0.0
    y_offset: float = 0.0
    zoom: float = 0.002

    def __post_init__(self) -> None:
        for name in ("x_offset", "y_offset", "zoom"):
            if not math.isfinite(getattr(self, name)):
                raise ValueError(f"{name} must be a finite number, got {getattr(self, name)!r}")
        if self.zoom == 0.0:
            raise ValueError("zoom must be non-zero")

    def scaled(self, factor: float) -> View:
        return replace(self, zoom=self.zoom * factor)

    def plane_coordinates(self, x: int, y: int, width: int, height: int) -> tuple[float, float]:
        re = pixel_to_plane(x, self.x_offset, self.zoom, center_correction(width))
        im = pixel_to_plane(y, self.y_offset, self.zoom, center_correction(height))
        return re, im

    def axis(self, count: int, offset: float) -> np.ndarray:
        """Plane coordinates of pixels ``0..count-1`` along one axis."""

        pixels = np.arange(count, dtype=np.float64)
        return (pixels - np.float64(center_correction(count))) * np.float64(self.zoom) + np.float64(offset)


def center_correction(dimension: int) -> int:
    # integer division puts the plane origin on the middle pixel
    return dimension // 2


def pixel_to_plane(pixel_index: int, offset: float, zoom: float, center_correction: int) -> float:
    return (float(pixel_index) - float(center_correction)) * zoom + offset
