"""pytest configuration and fixtures for the perspective_mapper test suite."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from perspective_mapper.calibration import MappingStore
from perspective_mapper.mapping import HandleModel, corner_sources


@pytest.fixture
def square() -> np.ndarray:
    """Viewport corners in perimeter order."""
    return corner_sources()


@pytest.fixture
def model(square: np.ndarray) -> HandleModel:
    return HandleModel(sources=square, magnetic_radius=0.2)


@pytest.fixture
def store(tmp_path: Path) -> MappingStore:
    return MappingStore(tmp_path / "mappings")
