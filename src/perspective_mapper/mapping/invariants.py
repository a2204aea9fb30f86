"""Canonical source quadrilaterals the homography maps from."""

from __future__ import annotations

import math
from enum import Enum
from typing import Tuple

import numpy as np


class MappingMode(str, Enum):
    CORNERS = "corners"
    CIRCLE = "circle"


def corner_sources() -> np.ndarray:
    """Viewport corners in perimeter order, Y up."""
    return np.array(
        [
            (-1.0, 1.0),  # top left
            (-1.0, -1.0),  # bottom left
            (1.0, -1.0),  # bottom right
            (1.0, 1.0),  # top right
        ],
        dtype=np.float64,
    )


def circle_radii(aspect_ratio: float) -> Tuple[float, float]:
    """Return (horizontal, vertical) radii of a circle inscribed in the viewport.

    ``aspect_ratio`` is width / height. The longer axis is shrunk so that the
    ellipse in normalized coordinates shows up as a circle on the surface.
    """
    if not math.isfinite(aspect_ratio) or aspect_ratio <= 0:
        raise ValueError(f"Aspect ratio must be positive, got {aspect_ratio}")
    horizontal = 1.0 if aspect_ratio <= 1.0 else 1.0 / aspect_ratio
    vertical = 1.0 if aspect_ratio >= 1.0 else aspect_ratio
    return horizontal, vertical


def circle_sources(aspect_ratio: float) -> np.ndarray:
    """Extremal points of the inscribed circle, in the same winding as ``corner_sources``."""
    a, b = circle_radii(aspect_ratio)
    return np.array(
        [
            (0.0, b),  # top
            (-a, 0.0),  # left
            (0.0, -b),  # bottom
            (a, 0.0),  # right
        ],
        dtype=np.float64,
    )


def invariant_sources(mode: MappingMode | str, aspect_ratio: float = 1.0) -> np.ndarray:
    mode = MappingMode(mode)
    if mode is MappingMode.CIRCLE:
        return circle_sources(aspect_ratio)
    return corner_sources()
