"""Public API for escape-time canvas rendering."""

from .evaluator import (
    DETAIL,
    MAX_ITER,
    escape_time,
    escape_times,
    intensity,
    max_iterations,
    shade,
)
from .mapping import View, center_correction, pixel_to_plane
from .scheduler import (
    Canvas,
    CanvasFrozenError,
    RenderError,
    RenderResult,
    default_workers,
    render,
)

__all__ = [
    "Canvas",
    "CanvasFrozenError",
    "DETAIL",
    "MAX_ITER",
    "RenderError",
    "RenderResult",
    "View",
    "center_correction",
    "default_workers",
    "escape_time",
    "escape_times",
    "intensity",
    "max_iterations",
    "pixel_to_plane",
    "render",
    "shade",
]
