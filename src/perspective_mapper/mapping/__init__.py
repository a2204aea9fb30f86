"""Interactive handle editing for a single mapped surface."""

from .handles import (  # noqa: F401
    ALL_HANDLES,
    CENTER_HANDLE,
    NO_HANDLE,
    TARGET_HANDLES,
    Handle,
    HandleKind,
    HandleModel,
    HandleSnapshot,
)
from .invariants import MappingMode, circle_radii, circle_sources, corner_sources, invariant_sources  # noqa: F401
