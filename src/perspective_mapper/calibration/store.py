"""Persistence of per-surface mapping records."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from perspective_mapper.mapping.invariants import MappingMode

Pair = Tuple[float, float]


class HandleStyle(BaseModel):
    """Presentation settings stored alongside a mapping. Not used by the core."""

    handle_size: float = Field(20.0, ge=10.0, le=100.0)
    idle_color: List[int] = Field(default_factory=lambda: [139, 139, 0], min_length=3, max_length=3)
    selected_color: List[int] = Field(default_factory=lambda: [0, 140, 255], min_length=3, max_length=3)


class MappingRecord(BaseModel):
    surface_id: str
    display_index: int = Field(0, ge=0)
    mapping_mode: MappingMode = MappingMode.CORNERS
    sources: List[Pair] = Field(..., min_length=4, max_length=4)
    targets: List[Pair] = Field(..., min_length=4, max_length=4)
    ui: Optional[HandleStyle] = None

    @classmethod
    def from_arrays(
        cls,
        surface_id: str,
        display_index: int,
        mapping_mode: MappingMode,
        sources: np.ndarray,
        targets: np.ndarray,
        ui: Optional[HandleStyle] = None,
    ) -> "MappingRecord":
        return cls(
            surface_id=surface_id,
            display_index=display_index,
            mapping_mode=mapping_mode,
            sources=[(float(x), float(y)) for x, y in sources],
            targets=[(float(x), float(y)) for x, y in targets],
            ui=ui,
        )

    def source_array(self) -> np.ndarray:
        return np.array(self.sources, dtype=np.float64)

    def target_array(self) -> np.ndarray:
        return np.array(self.targets, dtype=np.float64)


class MappingStore:
    """Reads and writes one JSON record per surface in a directory."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, surface_id: str) -> Path:
        return self._directory / f"{surface_id}_config.json"

    def save(self, record: MappingRecord) -> Path:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(record.surface_id)
        # The previous file stays intact until the new one is fully written.
        staging = path.with_name(path.name + ".tmp")
        try:
            with open(staging, "w", encoding="utf-8") as handle:
                handle.write(record.model_dump_json(indent=2))
            staging.replace(path)
        except OSError:
            staging.unlink(missing_ok=True)
            raise
        logger.info(f"Saved mapping for {record.surface_id} to {path}")
        return path

    def load(self, surface_id: str) -> Optional[MappingRecord]:
        """Return the stored record, or None when there is nothing usable on disk."""
        path = self.path_for(surface_id)
        if not path.exists():
            logger.info(f"No mapping file found for {surface_id} at {path}")
            return None
        try:
            with open(path, "rb") as handle:
                record = MappingRecord.model_validate_json(handle.read())
        except (OSError, UnicodeDecodeError, ValidationError) as exc:
            logger.warning(f"Ignoring unreadable mapping file {path}: {exc}")
            return None
        logger.info(f"Loaded mapping for {surface_id} from {path}")
        return record
