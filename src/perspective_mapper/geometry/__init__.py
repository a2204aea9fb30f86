"""Planar geometry and homography utilities."""

from .homography import (  # noqa: F401
    DEFAULT_PIVOT_TOLERANCE,
    DegenerateInputError,
    build_linear_system,
    compute_homography,
    gaussian_elimination,
    to_matrix4x4,
    transform_points,
)
from .kernel import (  # noqa: F401
    DegenerateGeometryError,
    as_point,
    as_quad,
    barycenter,
    normal,
    quadrilateral_center,
)
