"""Viewport conversions for handing homographies to pixel-space renderers."""

from .viewport import homography_to_pixels, ndc_to_pixel, ndc_to_pixel_matrix, pixel_to_ndc  # noqa: F401
