"""Configuration schema and loader for perspective mapping sessions."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import yaml
from pydantic import BaseModel, Field, field_validator

from perspective_mapper.mapping.invariants import MappingMode


class SurfaceConfig(BaseModel):
    id: str
    display_index: int = Field(0, ge=0)
    resolution: List[int] = Field(..., min_length=2, max_length=2)
    mapping_mode: MappingMode = MappingMode.CORNERS
    magnetic_radius: float = Field(0.2, gt=0.0, le=0.5)

    @field_validator("resolution")
    @classmethod
    def ensure_positive_resolution(cls, value: List[int]) -> List[int]:
        if any(side <= 0 for side in value):
            raise ValueError(f"Resolution must be positive, got {value}")
        return value

    @property
    def width(self) -> int:
        return self.resolution[0]

    @property
    def height(self) -> int:
        return self.resolution[1]

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height


class ControlsConfig(BaseModel):
    nudge_speed: float = Field(0.1, gt=0.0)
    fast_multiplier: float = Field(10.0, gt=0.0)
    slow_multiplier: float = Field(0.2, gt=0.0)
    clamp_pointer: bool = True


class LoggingConfig(BaseModel):
    level: str = Field("INFO")
    output: str = Field("stdout")


class StorageConfig(BaseModel):
    mappings_dir: Path

    @field_validator("mappings_dir", mode="before")
    @classmethod
    def ensure_mappings_dir(cls, value: str | Path) -> Path:
        path = Path(value)
        path.mkdir(parents=True, exist_ok=True)
        return path


class ProjectMetadata(BaseModel):
    name: str
    data_root: Path

    @field_validator("data_root", mode="before")
    @classmethod
    def ensure_data_root(cls, value: str | Path) -> Path:
        path = Path(value)
        path.mkdir(parents=True, exist_ok=True)
        return path


class MappingConfig(BaseModel):
    project: ProjectMetadata
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    surfaces: List[SurfaceConfig] = Field(..., min_length=1)
    controls: ControlsConfig = Field(default_factory=ControlsConfig)
    storage: StorageConfig

    def surface_by_id(self, surface_id: str) -> SurfaceConfig:
        for surface in self.surfaces:
            if surface.id == surface_id:
                return surface
        raise KeyError(f"Surface '{surface_id}' not found in configuration")


def load_config(path: str | Path) -> MappingConfig:
    """Load configuration from YAML file."""
    with open(path, "r", encoding="utf-8") as handle:
        raw: Dict[str, object] = yaml.safe_load(handle)
    return MappingConfig.model_validate(raw)
