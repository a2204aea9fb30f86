"""Interactive four-point perspective mapping package."""

from .config import MappingConfig, load_config  # noqa: F401
from .geometry import compute_homography, quadrilateral_center  # noqa: F401
from .mapping import Handle, HandleModel, MappingMode  # noqa: F401
from .mapping.session import Command, InputEvent, MappingSession  # noqa: F401
