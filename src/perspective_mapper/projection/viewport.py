"""Conversions between pixel space and normalized device coordinates."""

from __future__ import annotations

from typing import Iterable

import numpy as np


def _as_points(points: Iterable[Iterable[float]]) -> np.ndarray:
    return np.asarray(list(points), dtype=np.float64).reshape(-1, 2)


def ndc_to_pixel_matrix(width: int, height: int) -> np.ndarray:
    """Affine map from NDC (Y up, [-1, 1]) to pixels (origin top left, Y down)."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Viewport size must be positive, got {width}x{height}")
    return np.array(
        [
            [width / 2.0, 0.0, width / 2.0],
            [0.0, -height / 2.0, height / 2.0],
            [0.0, 0.0, 1.0],
        ],
        dtype=np.float64,
    )


def pixel_to_ndc(points: Iterable[Iterable[float]], width: int, height: int) -> np.ndarray:
    pts = _as_points(points)
    scale = ndc_to_pixel_matrix(width, height)
    return (pts - scale[:2, 2]) / np.diag(scale)[:2]


def ndc_to_pixel(points: Iterable[Iterable[float]], width: int, height: int) -> np.ndarray:
    pts = _as_points(points)
    scale = ndc_to_pixel_matrix(width, height)
    return pts * np.diag(scale)[:2] + scale[:2, 2]


def homography_to_pixels(homography: np.ndarray, width: int, height: int) -> np.ndarray:
    """Express an NDC homography in pixel coordinates, e.g. for ``cv2.warpPerspective``."""
    scale = ndc_to_pixel_matrix(width, height)
    pixel_h = scale @ np.asarray(homography, dtype=np.float64) @ np.linalg.inv(scale)
    return pixel_h / pixel_h[2, 2]
