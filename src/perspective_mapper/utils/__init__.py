"""Utility helpers."""

from .logging import configure_logging  # noqa: F401
