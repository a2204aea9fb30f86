"""Four-point homography solver for mapping source handles onto targets."""

from __future__ import annotations

from typing import Iterable, Optional

import cv2
import numpy as np

from .kernel import as_quad

DEFAULT_PIVOT_TOLERANCE = 1e-10


class DegenerateInputError(RuntimeError):
    """Raised when the correspondences do not determine a stable homography."""


def build_linear_system(src_points: np.ndarray, dst_points: np.ndarray) -> np.ndarray:
    """Build the 8x9 augmented system for h11..h32 with h33 fixed to 1.

    For every correspondence (x, y) -> (x', y'):

        x' * (h31*x + h32*y + 1) = h11*x + h12*y + h13
        y' * (h31*x + h32*y + 1) = h21*x + h22*y + h23

    The last column holds the right-hand side.
    """
    system = np.zeros((8, 9), dtype=np.float64)
    for i, ((x, y), (u, v)) in enumerate(zip(src_points, dst_points)):
        system[2 * i] = [-x, -y, -1.0, 0.0, 0.0, 0.0, x * u, y * u, -u]
        system[2 * i + 1] = [0.0, 0.0, 0.0, -x, -y, -1.0, x * v, y * v, -v]
    return system


def gaussian_elimination(augmented: np.ndarray, pivot_tolerance: Optional[float] = None) -> np.ndarray:
    """Reduce an augmented system to row-echelon form and back-substitute.

    Partial pivoting picks the largest remaining entry of each column. Only
    the rows below a pivot are eliminated; back-substitution then runs upward
    on the augmented column alone, so the coefficient block is left upper
    triangular and the solution is read from the last column.

    Args:
        augmented: Array of shape (m, m + 1). Not modified.
        pivot_tolerance: When set, a chosen pivot smaller than this raises
            ``DegenerateInputError``. When ``None`` a zero column is skipped
            and whatever the elimination produced is returned.

    Returns:
        The reduced copy of ``augmented``.
    """
    a = np.array(augmented, dtype=np.float64, copy=True)
    rows, cols = a.shape
    last = cols - 1

    i = 0
    j = 0
    while i < rows and j < cols:
        pivot_row = i + int(np.argmax(np.abs(a[i:rows, j])))
        pivot = a[pivot_row, j]

        if pivot_tolerance is not None and j < last and abs(pivot) < pivot_tolerance:
            raise DegenerateInputError(
                f"Pivot {abs(pivot):.3e} in column {j} is below tolerance {pivot_tolerance:.1e}"
            )

        if pivot != 0:
            if pivot_row != i:
                a[[i, pivot_row]] = a[[pivot_row, i]]
            a[i] /= a[i, j]
            for u in range(i + 1, rows):
                a[u] -= a[u, j] * a[i]
            i += 1
        j += 1

    for i in range(rows - 2, -1, -1):
        for j in range(i + 1, last):
            a[i, last] -= a[i, j] * a[j, last]
    return a


def compute_homography(
    src_points: Iterable[Iterable[float]],
    dst_points: Iterable[Iterable[float]],
    pivot_tolerance: Optional[float] = DEFAULT_PIVOT_TOLERANCE,
) -> np.ndarray:
    """Compute the projective transform mapping four source points onto four targets.

    Args:
        src_points: Four (x, y) pairs, no three collinear.
        dst_points: Four (x, y) pairs paired by index with ``src_points``.
        pivot_tolerance: See ``gaussian_elimination``. Pass ``None`` for a
            best-effort matrix on near-degenerate input.

    Returns:
        3x3 homography matrix with h33 == 1.
    """
    src = as_quad(src_points, what="source points")
    dst = as_quad(dst_points, what="target points")

    solved = gaussian_elimination(build_linear_system(src, dst), pivot_tolerance)
    h = solved[:, -1]
    return np.array(
        [
            [h[0], h[1], h[2]],
            [h[3], h[4], h[5]],
            [h[6], h[7], 1.0],
        ],
        dtype=np.float64,
    )


def to_matrix4x4(homography: np.ndarray) -> np.ndarray:
    """Embed a 3x3 homography in a 4x4 carrier with the z axis zeroed."""
    h = np.asarray(homography, dtype=np.float64)
    if h.shape != (3, 3):
        raise ValueError(f"Expected a 3x3 homography, got shape {h.shape}")
    carrier = np.zeros((4, 4), dtype=np.float64)
    carrier[0, [0, 1, 3]] = h[0]
    carrier[1, [0, 1, 3]] = h[1]
    carrier[3, [0, 1, 3]] = h[2]
    return carrier


def transform_points(points: Iterable[Iterable[float]], homography: np.ndarray) -> np.ndarray:
    """Apply a homography to (x, y) points."""
    pts = np.array(list(points), dtype=np.float64)
    pts = pts.reshape(-1, 1, 2)
    warped = cv2.perspectiveTransform(pts, np.asarray(homography, dtype=np.float64))
    return warped.reshape(-1, 2)
