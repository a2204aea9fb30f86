"""Planar vector helpers shared by the handle model and the solver."""

from __future__ import annotations

from typing import Iterable

import numpy as np
from loguru import logger

# Sine of the angle between the diagonals below which they are treated as parallel.
PARALLEL_EPSILON = 1e-12


class DegenerateGeometryError(ValueError):
    """Raised when a quadrilateral has no diagonal intersection."""


def as_point(value: Iterable[float]) -> np.ndarray:
    point = np.asarray(value, dtype=np.float64).reshape(-1)
    if point.shape != (2,):
        raise ValueError(f"Expected a 2D point, got shape {point.shape}")
    return point


def as_quad(values: Iterable[Iterable[float]], what: str = "points") -> np.ndarray:
    """Coerce four (x, y) pairs into a float array of shape (4, 2)."""
    quad = np.asarray(list(values), dtype=np.float64)
    if quad.ndim != 2 or quad.shape != (4, 2):
        count = quad.shape[0] if quad.ndim >= 1 else 0
        raise ValueError(f"Expecting exactly 4 {what}, got {count}")
    return quad


def barycenter(points: Iterable[Iterable[float]]) -> np.ndarray:
    pts = np.asarray(list(points), dtype=np.float64)
    if pts.size == 0:
        raise ValueError("Cannot compute the barycenter of an empty point set")
    return pts.reshape(-1, 2).mean(axis=0)


def normal(vector: Iterable[float]) -> np.ndarray:
    """Rotate a vector by 90 degrees counter-clockwise."""
    v = as_point(vector)
    return np.array([-v[1], v[0]], dtype=np.float64)


def quadrilateral_center(corners: Iterable[Iterable[float]], strict: bool = False) -> np.ndarray:
    """Return the intersection of the diagonals 0-2 and 1-3.

    Corners must be given in perimeter order. This is not the centroid: for a
    simple quadrilateral it is the point the homography maps the source
    center onto.

    Args:
        corners: Four (x, y) pairs in perimeter order.
        strict: Raise ``DegenerateGeometryError`` when the diagonals are
            parallel instead of falling back to the barycenter.

    Returns:
        Array of shape (2,).
    """
    quad = as_quad(corners, what="corners")
    a, b, c, d = quad

    denominator = (a[1] - c[1]) * (b[0] - d[0]) - (b[1] - d[1]) * (a[0] - c[0])
    scale = float(np.linalg.norm(a - c) * np.linalg.norm(b - d))
    if abs(denominator) <= PARALLEL_EPSILON * scale:
        if strict:
            raise DegenerateGeometryError("Quadrilateral diagonals are parallel")
        logger.debug("Parallel diagonals, using barycenter as quadrilateral center")
        return barycenter(quad)

    t = ((b[1] - d[1]) * (c[0] - d[0]) + (d[1] - c[1]) * (b[0] - d[0])) / denominator
    return c + t * (a - c)
